"""Mount management for the target root.

This module handles:
- Mounting proc and a bind of /sys under the target root
- Reading the live mount table to find mounts below a directory
- Unmounting everything below the target root, deepest first

Unmounting consults the mount table rather than remembered state, so
release() is safe after a partial acquire, after a crashed previous run,
or when nothing was ever mounted. Roots are resolved through symlinks
before comparison since the mount table holds canonical paths.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from alpine_imagegen.errors import CommandExecutionError, MountError
from alpine_imagegen.rootfs import runner

logger = logging.getLogger(__name__)

PROC_MOUNTS = Path("/proc/mounts")

# (relative mount point, mount arguments before the target path)
CHROOT_MOUNTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("proc", ("-t", "proc", "none")),
    ("sys", ("-o", "bind", "/sys")),
)


def _decode_mount_path(field: str) -> str:
    """Decode octal escapes (\\040 for space etc.) used in /proc/mounts."""
    if "\\" not in field:
        return field
    out: list[str] = []
    i = 0
    while i < len(field):
        chunk = field[i : i + 4]
        if (
            len(chunk) == 4
            and chunk[0] == "\\"
            and all(c in "01234567" for c in chunk[1:])
        ):
            out.append(chr(int(chunk[1:], 8)))
            i += 4
        else:
            out.append(field[i])
            i += 1
    return "".join(out)


def read_mount_points(mounts_file: Path = PROC_MOUNTS) -> list[Path]:
    """Return every mount point listed in a mount table file.

    Args:
        mounts_file: Mount table in /proc/mounts format.

    Returns:
        Mount point paths in table order.

    Raises:
        MountError: If the mount table cannot be read.
    """
    try:
        content = mounts_file.read_text(encoding="utf-8")
    except OSError as e:
        raise MountError(f"Cannot read mount table {mounts_file}: {e}") from e

    points: list[Path] = []
    for line in content.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            points.append(Path(_decode_mount_path(parts[1])))
    return points


def _is_below(path: Path, root: Path) -> bool:
    return path != root and path.is_relative_to(root)


@dataclass
class MountSet:
    """Handle for the mounts acquired under a target root.

    Attributes:
        root: The target root the mounts belong to.
        mount_points: Absolute mount points acquired, in mount order.
    """

    root: Path
    mount_points: list[Path]
    manager: MountManager

    @property
    def active(self) -> bool:
        """Whether every acquired mount is still attached."""
        current = set(self.manager.active_mounts(self.root))
        return bool(self.mount_points) and all(
            p in current for p in self.mount_points
        )

    def relative_points(self) -> list[str]:
        """Mount points relative to the root (e.g., 'proc')."""
        return [p.relative_to(self.root).as_posix() for p in self.mount_points]


class MountManager:
    """Acquires and releases the chroot mounts under a target root."""

    def __init__(
        self,
        mounts_file: Path = PROC_MOUNTS,
        timeout: float | None = None,
    ) -> None:
        self.mounts_file = mounts_file
        self.timeout = timeout

    def active_mounts(self, root: Path) -> list[Path]:
        """Return mount points strictly below root, in mount-table order."""
        root = Path(root).resolve()
        return [p for p in read_mount_points(self.mounts_file) if _is_below(p, root)]

    def acquire(self, root: Path) -> MountSet:
        """Mount proc and a bind of /sys under root.

        Args:
            root: Target root directory.

        Returns:
            MountSet describing the acquired mounts.

        Raises:
            MountError: If a mount fails. Mounts acquired so far are released.
        """
        root = Path(root).resolve()
        acquired: list[Path] = []
        already = set(self.active_mounts(root))

        for rel, args in CHROOT_MOUNTS:
            target = root / rel
            if target in already:
                logger.info("%s already mounted", target)
                acquired.append(target)
                continue

            target.mkdir(parents=True, exist_ok=True)
            try:
                runner.run_command(
                    ["mount", *args, target], timeout=self.timeout
                )
            except CommandExecutionError as e:
                logger.error("Mounting %s failed, releasing partial mounts", target)
                self.release(root)
                raise MountError(f"Failed to mount {target}: {e}") from e
            acquired.append(target)

        logger.info(
            "Mounted %s under %s", ", ".join(rel for rel, _ in CHROOT_MOUNTS), root
        )
        return MountSet(root=root, mount_points=acquired, manager=self)

    def release(self, root: Path) -> list[Path]:
        """Unmount everything below root, deepest mount point first.

        A root with nothing mounted below it is a no-op.

        Args:
            root: Target root directory.

        Returns:
            Mount points that were unmounted.

        Raises:
            MountError: If an unmount fails.
        """
        root = Path(root).resolve()
        active = self.active_mounts(root)
        if not active:
            logger.debug("Nothing mounted under %s", root)
            return []

        # Mount order reversed, then deepest first, handles stacked mounts
        ordered = sorted(
            reversed(active), key=lambda p: len(p.parts), reverse=True
        )
        released: list[Path] = []
        for mount_point in ordered:
            try:
                runner.run_command(["umount", mount_point], timeout=self.timeout)
            except CommandExecutionError as e:
                raise MountError(f"Failed to unmount {mount_point}: {e}") from e
            released.append(mount_point)

        logger.info("Unmounted %d mount(s) under %s", len(released), root)
        return released

    @contextmanager
    def mounted(self, root: Path) -> Iterator[MountSet]:
        """Hold the chroot mounts for the duration of a with-block."""
        mount_set = self.acquire(root)
        try:
            yield mount_set
        finally:
            self.release(root)


__all__ = [
    "CHROOT_MOUNTS",
    "PROC_MOUNTS",
    "MountManager",
    "MountSet",
    "read_mount_points",
]
