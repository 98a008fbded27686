"""Target root management module.

This module handles:
- Running external commands with consistent logging
- Mounting and unmounting proc/sys under the target root
- Running commands chrooted into the target root
- Resetting and locking the target root
"""

from alpine_imagegen.rootfs.chroot import run_in_root
from alpine_imagegen.rootfs.mounts import MountManager, MountSet
from alpine_imagegen.rootfs.runner import CommandResult, run_command
from alpine_imagegen.rootfs.target import (
    check_target_dir,
    reset_target_root,
    target_lock,
)

__all__ = [
    "CommandResult",
    "MountManager",
    "MountSet",
    "check_target_dir",
    "reset_target_root",
    "run_command",
    "run_in_root",
    "target_lock",
]
