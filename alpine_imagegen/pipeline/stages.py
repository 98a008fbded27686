"""Pipeline stage definitions.

A stage is a named step of the image build with declared preconditions.
The driver checks the preconditions, runs the stage, and stops at the
first failure.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from alpine_imagegen.bootstrap.fetch import fetch_bootstrap_tool, import_trust_keys
from alpine_imagegen.bootstrap.provision import bootstrap_base
from alpine_imagegen.customize.guest_tools import install_guest_tools
from alpine_imagegen.customize.steps import IMAGE_STEPS, NETWORK_STEPS, apply_steps
from alpine_imagegen.errors import PreconditionError
from alpine_imagegen.package.archive import (
    archive,
    artifact_name,
    load_exclude_manifest,
)
from alpine_imagegen.pipeline.context import BuildContext
from alpine_imagegen.rootfs.target import reset_target_root

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    """A single pipeline stage.

    Attributes:
        name: Stage identifier used in logs and records.
        run: Function applying the stage; returning False marks it skipped.
        requires_root: The target root must exist before the stage runs.
        requires_mounts: The chroot mounts must be active before the stage runs.
    """

    name: str
    run: Callable[[BuildContext], bool | None]
    requires_root: bool = True
    requires_mounts: bool = False

    def check_preconditions(self, ctx: BuildContext) -> None:
        """Raise PreconditionError if the stage cannot run yet."""
        if self.requires_root and not ctx.root.is_dir():
            raise PreconditionError(
                f"Stage {self.name} requires the target root {ctx.root}"
            )
        if self.requires_mounts and (ctx.mounts is None or not ctx.mounts.active):
            raise PreconditionError(
                f"Stage {self.name} requires active mounts under {ctx.root}"
            )


def reset_target(ctx: BuildContext) -> None:
    reset_target_root(ctx.root, ctx.mount_manager)


def provision_base(ctx: BuildContext) -> None:
    """Fetch apk.static, install signing keys, and install alpine-base."""
    config = ctx.config
    ctx.apk_static = fetch_bootstrap_tool(
        ctx.client,
        mirror=config.mirror,
        release=config.release,
        tool_ref=config.apk_tools,
        workspace=ctx.workspace,
        arch=ctx.settings.arch,
        timeout=ctx.settings.download_timeout,
    )
    import_trust_keys(
        ctx.client,
        ctx.root,
        key_names=ctx.settings.trust_keys,
        key_host=ctx.settings.key_host,
        timeout=ctx.settings.download_timeout,
    )
    bootstrap_base(
        ctx.root,
        mirror=config.mirror,
        release=config.release,
        apk_static=ctx.apk_static,
        timeout=ctx.settings.command_timeout,
    )


def configure_network(ctx: BuildContext) -> None:
    apply_steps(ctx, NETWORK_STEPS)


def acquire_mounts(ctx: BuildContext) -> None:
    """Attach the chroot mounts; the driver releases them when the run ends."""
    ctx.mounts = ctx.mount_manager.acquire(ctx.root)


def customize(ctx: BuildContext) -> None:
    apply_steps(ctx, IMAGE_STEPS)


def guest_tools(ctx: BuildContext) -> bool:
    return install_guest_tools(
        ctx.settings.guest_tools_installer,
        ctx.root,
        timeout=ctx.settings.command_timeout,
    )


def package(ctx: BuildContext) -> None:
    """Archive the target root, skipping excluded paths and live mounts."""
    patterns = load_exclude_manifest(ctx.settings.exclude_file)
    if ctx.mounts is not None:
        for point in ctx.mounts.relative_points():
            pattern = f"{point}/*"
            if pattern not in patterns:
                patterns.append(pattern)

    target = ctx.output_dir / artifact_name(ctx.config.image_name, ctx.build_date)
    ctx.artifact = archive(ctx.root, target, patterns)


def default_stages() -> list[Stage]:
    """Return the image build stages in execution order."""
    return [
        Stage("reset-target", reset_target, requires_root=False),
        Stage("provision-base", provision_base),
        Stage("configure-network", configure_network),
        Stage("acquire-mounts", acquire_mounts),
        Stage("customize", customize, requires_mounts=True),
        Stage("guest-tools", guest_tools),
        Stage("package", package, requires_mounts=True),
    ]


__all__ = [
    "Stage",
    "acquire_mounts",
    "configure_network",
    "customize",
    "default_stages",
    "guest_tools",
    "package",
    "provision_base",
    "reset_target",
]
