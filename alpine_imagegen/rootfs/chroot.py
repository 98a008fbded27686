"""Command execution inside the target root."""

from __future__ import annotations

from collections.abc import Sequence

from alpine_imagegen.errors import PreconditionError
from alpine_imagegen.rootfs import runner
from alpine_imagegen.rootfs.mounts import MountSet

# PATH inside the image; the host PATH may not exist there
CHROOT_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"


def run_in_root(
    mounts: MountSet,
    argv: Sequence[str],
    *,
    check: bool = True,
    timeout: float | None = None,
) -> runner.CommandResult:
    """Run a command with the target root as its filesystem root.

    Args:
        mounts: Active mounts for the target root.
        argv: Command and arguments as seen inside the image.
        check: Raise on a non-zero exit.
        timeout: Timeout in seconds (None = no timeout).

    Returns:
        CommandResult of the chrooted command.

    Raises:
        PreconditionError: If the chroot mounts are not attached.
        CommandExecutionError: If the command fails.
    """
    if not mounts.active:
        raise PreconditionError(
            f"Chroot mounts are not active under {mounts.root}; "
            "acquire them before running commands in the image"
        )

    return runner.run_command(
        ["chroot", mounts.root, *argv],
        check=check,
        env={"PATH": CHROOT_PATH},
        timeout=timeout,
    )


__all__ = ["CHROOT_PATH", "run_in_root"]
