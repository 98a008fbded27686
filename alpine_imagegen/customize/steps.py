"""Ordered customization steps for the target root.

Steps 1-2 (network and repository config) are plain file writes and run
before the chroot mounts exist. Steps 3-10 run with the mounts attached;
package and service operations go through the chroot, file edits are
applied directly to the tree. Every step is safe to re-run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from alpine_imagegen.customize.edits import (
    image_path,
    relink_relative,
    set_sshd_options,
    write_identity_files,
    write_repositories,
    write_resolv_conf,
)

if TYPE_CHECKING:
    from alpine_imagegen.pipeline.context import BuildContext

logger = logging.getLogger(__name__)

BASELINE_PACKAGES = [
    "bash",
    "curl",
    "gettext",
    "ncurses-terminfo",
    "openssh",
    "nano",
    "vim",
    "wget",
]

# Kernel packages pulled in by some base sets but useless in a container image
KERNEL_PACKAGES = ["linux-firmware", "linux-grsec", "linux-vanilla"]

TIMEZONE = "UTC"

SSHD_OPTIONS = {
    "PasswordAuthentication": "no",
    "UsePrivilegeSeparation": "sandbox",
}

# OpenRC runlevel -> services, in registration order
SERVICE_RUNLEVELS: dict[str, list[str]] = {
    "sysinit": ["devfs", "dmesg", "mdev"],
    "boot": ["bootmisc", "hostname", "networking", "syslog", "urandom"],
    "default": ["crond", "sshd"],
    "shutdown": ["killprocs", "mount-ro", "savecache"],
}

# (link, real target) pairs, both as in-image absolute paths
SYMLINK_REPAIRS = [
    ("/sbin/init", "/bin/busybox"),
    ("/usr/bin/su", "/bin/bbsuid"),
]


@dataclass(frozen=True)
class CustomizeStep:
    """A single customization step.

    Attributes:
        number: Position in the overall customization sequence.
        name: Short identifier used in logs.
        apply: Function applying the step to a build context.
    """

    number: int
    name: str
    apply: Callable[[BuildContext], None]


def configure_dns(ctx: BuildContext) -> None:
    write_resolv_conf(ctx.root, ctx.settings.nameservers)


def configure_repositories(ctx: BuildContext) -> None:
    write_repositories(ctx.root, ctx.config.repository_urls())


def install_timezone(ctx: BuildContext) -> None:
    """Leave only the resolved zone file behind, not the tzdata package."""
    ctx.chroot(["apk", "add", "tzdata"])
    ctx.chroot(["cp", f"/usr/share/zoneinfo/{TIMEZONE}", "/etc/localtime"])
    ctx.chroot(["apk", "del", "tzdata"])


def install_packages(ctx: BuildContext) -> None:
    ctx.chroot(["apk", "update"])
    ctx.chroot(["apk", "add", *BASELINE_PACKAGES])


def remove_kernel_packages(ctx: BuildContext) -> None:
    """Remove the kernel packages that are actually installed."""
    installed = [
        pkg
        for pkg in KERNEL_PACKAGES
        if ctx.chroot(["apk", "info", "-e", pkg], check=False).success
    ]
    if not installed:
        logger.info("No kernel packages installed")
        return
    ctx.chroot(["apk", "del", *installed])


def upgrade_packages(ctx: BuildContext) -> None:
    ctx.chroot(["apk", "upgrade"])


def harden_sshd(ctx: BuildContext) -> None:
    set_sshd_options(ctx.root, SSHD_OPTIONS)


def register_services(ctx: BuildContext) -> None:
    """Add each service to its runlevel unless it is already there."""
    for runlevel, services in SERVICE_RUNLEVELS.items():
        for service in services:
            entry = image_path(ctx.root, f"/etc/runlevels/{runlevel}/{service}")
            if entry.is_symlink() or entry.exists():
                logger.debug("%s already in runlevel %s", service, runlevel)
                continue
            ctx.chroot(["rc-update", "add", service, runlevel])


def repair_symlinks(ctx: BuildContext) -> None:
    for link, target in SYMLINK_REPAIRS:
        relink_relative(ctx.root, link, target)


def write_identity(ctx: BuildContext) -> None:
    write_identity_files(
        ctx.root,
        name=ctx.config.name,
        build_date=ctx.build_date,
        docs_url=ctx.config.docs_url,
        description=ctx.config.description,
    )


NETWORK_STEPS: list[CustomizeStep] = [
    CustomizeStep(1, "dns", configure_dns),
    CustomizeStep(2, "repositories", configure_repositories),
]

IMAGE_STEPS: list[CustomizeStep] = [
    CustomizeStep(3, "timezone", install_timezone),
    CustomizeStep(4, "packages", install_packages),
    CustomizeStep(5, "kernel-removal", remove_kernel_packages),
    CustomizeStep(6, "upgrade", upgrade_packages),
    CustomizeStep(7, "sshd", harden_sshd),
    CustomizeStep(8, "services", register_services),
    CustomizeStep(9, "symlinks", repair_symlinks),
    CustomizeStep(10, "identity", write_identity),
]

ALL_STEPS = NETWORK_STEPS + IMAGE_STEPS


def apply_steps(ctx: BuildContext, steps: Sequence[CustomizeStep]) -> None:
    """Apply customization steps in order; the first failure propagates."""
    for step in steps:
        logger.info(
            "Customize step %d/%d: %s", step.number, len(ALL_STEPS), step.name
        )
        step.apply(ctx)


__all__ = [
    "ALL_STEPS",
    "BASELINE_PACKAGES",
    "IMAGE_STEPS",
    "KERNEL_PACKAGES",
    "NETWORK_STEPS",
    "SERVICE_RUNLEVELS",
    "SSHD_OPTIONS",
    "SYMLINK_REPAIRS",
    "CustomizeStep",
    "apply_steps",
]
