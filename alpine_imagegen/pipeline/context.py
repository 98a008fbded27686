"""Per-run state shared by pipeline stages."""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import httpx

from alpine_imagegen.buildconfig.schema import BuildConfiguration
from alpine_imagegen.config import Settings
from alpine_imagegen.errors import PreconditionError
from alpine_imagegen.rootfs import runner
from alpine_imagegen.rootfs.chroot import run_in_root
from alpine_imagegen.rootfs.mounts import MountManager, MountSet
from alpine_imagegen.types import ArtifactInfo


def format_build_date(when: datetime | None = None) -> str:
    """Return the YYYYMMDD build date used in identity files and names."""
    return (when or datetime.now()).strftime("%Y%m%d")


@dataclass
class BuildContext:
    """State of one pipeline run.

    Attributes:
        config: Validated build configuration.
        settings: Host settings.
        build_date: YYYYMMDD stamp, fixed for the whole run.
        mount_manager: Manager for the chroot mounts.
        client: HTTP client for mirror and key downloads.
        output_dir: Directory receiving the archive.
        mounts: Active chroot mounts, once acquired.
        apk_static: Extracted bootstrap tool, once fetched.
        artifact: The written archive, once packaged.
        resources: Exit handlers run when the run ends (mount release).
    """

    config: BuildConfiguration
    settings: Settings
    build_date: str
    mount_manager: MountManager
    client: httpx.Client
    output_dir: Path
    mounts: MountSet | None = None
    apk_static: Path | None = None
    artifact: ArtifactInfo | None = None
    resources: ExitStack = field(default_factory=ExitStack)

    @property
    def root(self) -> Path:
        return self.config.install_dir.resolve()

    @property
    def workspace(self) -> Path:
        return self.settings.workspace_dir

    def chroot(
        self, argv: Sequence[str], check: bool = True
    ) -> runner.CommandResult:
        """Run a command inside the target root."""
        if self.mounts is None:
            raise PreconditionError(
                f"Chroot mounts have not been acquired for {self.root}"
            )
        return run_in_root(
            self.mounts, argv, check=check, timeout=self.settings.command_timeout
        )


__all__ = ["BuildContext", "format_build_date"]
