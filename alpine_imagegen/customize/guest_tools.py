"""Guest tooling installation.

The guest tooling installer is an external program that takes the target
root as its only argument and installs platform-specific agents into it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from alpine_imagegen.errors import PreconditionError
from alpine_imagegen.rootfs import runner

logger = logging.getLogger(__name__)


def install_guest_tools(
    installer: Path | None,
    root: Path,
    timeout: float | None = None,
) -> bool:
    """Run the guest tooling installer against the target root.

    Args:
        installer: Installer executable, or None to skip.
        root: Target root directory.
        timeout: Command timeout in seconds (None = no timeout).

    Returns:
        True if the installer ran, False if skipped.

    Raises:
        PreconditionError: If the installer does not exist.
        CommandExecutionError: If the installer fails.
    """
    if installer is None:
        logger.warning("No guest tooling installer configured, skipping")
        return False

    if not installer.is_file():
        raise PreconditionError(f"Guest tooling installer not found: {installer}")

    logger.info("Installing guest tools into %s", root)
    runner.run_command([installer, root], timeout=timeout)
    return True


__all__ = ["install_guest_tools"]
