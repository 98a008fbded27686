"""Target root lifecycle.

This module handles:
- Checking that the target directory exists before a build
- Resetting the target root to an empty directory (mounts unwound first)
- Locking the target root against concurrent builds
"""

from __future__ import annotations

import fcntl
import hashlib
import logging
import os
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from alpine_imagegen.errors import PreconditionError
from alpine_imagegen.rootfs.mounts import MountManager

logger = logging.getLogger(__name__)


def check_target_dir(install_dir: Path) -> None:
    """Verify the target directory exists and is a directory.

    Raises:
        PreconditionError: If the directory is missing or not a directory.
    """
    if not install_dir.exists():
        raise PreconditionError(f"Install directory does not exist: {install_dir}")
    if not install_dir.is_dir():
        raise PreconditionError(f"Install directory is not a directory: {install_dir}")


def reset_target_root(root: Path, mount_manager: MountManager) -> Path:
    """Unwind mounts under root, then recreate it as an empty directory.

    Safe to call repeatedly: a second call on an already-empty root
    finds nothing mounted and recreates the same empty directory.

    Args:
        root: Target root directory.
        mount_manager: Manager used to find and release mounts.

    Returns:
        The (empty) target root.

    Raises:
        PreconditionError: If mounts remain under root after release.
        MountError: If unmounting fails.
    """
    if root.exists():
        released = mount_manager.release(root)
        if released:
            logger.info("Released %d stale mount(s) under %s", len(released), root)

        remaining = mount_manager.active_mounts(root)
        if remaining:
            raise PreconditionError(
                f"Refusing to delete {root}: still mounted at "
                + ", ".join(str(p) for p in remaining)
            )

        logger.info("Removing existing target root %s", root)
        shutil.rmtree(root)

    root.mkdir(parents=True)
    logger.info("Created empty target root %s", root)
    return root


@contextmanager
def target_lock(lock_dir: Path, root: Path) -> Iterator[None]:
    """Hold an exclusive lock on a target root for the duration of a build.

    The lock file lives in lock_dir, outside the target root, so resetting
    the root does not drop the lock.

    Args:
        lock_dir: Directory for lock files.
        root: Target root to lock.

    Yields:
        None when the lock is held.

    Raises:
        PreconditionError: If another build holds the lock.
    """
    lock_dir.mkdir(parents=True, exist_ok=True)

    key = hashlib.sha256(str(Path(root).resolve()).encode()).hexdigest()[:16]
    lock_file = lock_dir / f"target_{key}.lock"

    fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o600)
    lock_acquired = False
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise PreconditionError(
                f"Another build is already running against {root}"
            ) from None
        lock_acquired = True
        logger.debug("Target lock acquired for %s", root)
        yield
    finally:
        if lock_acquired:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Target lock released for %s", root)
        os.close(fd)


__all__ = ["check_target_dir", "reset_target_root", "target_lock"]
