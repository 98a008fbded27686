"""Base system provisioning with apk.static.

Initializes the package database in the target root and installs the
minimal base package set straight from the mirror, before any package
manager exists inside the image.
"""

from __future__ import annotations

import logging
from pathlib import Path

from alpine_imagegen.rootfs import runner

logger = logging.getLogger(__name__)

BASE_PACKAGES = ["alpine-base"]

# Package database location relative to the target root
PACKAGE_DB_DIR = "lib/apk/db"


def compose_bootstrap_command(
    apk_static: Path,
    root: Path,
    repository_url: str,
    packages: list[str] | None = None,
) -> list[str]:
    """Compose the apk.static command that creates the base system.

    Args:
        apk_static: Path to the extracted apk.static binary.
        root: Target root directory.
        repository_url: The release's main repository URL.
        packages: Packages to install (defaults to BASE_PACKAGES).

    Returns:
        Command as list of strings suitable for subprocess.
    """
    return [
        str(apk_static),
        "-X",
        repository_url,
        "-U",
        "--allow-untrusted",
        "--root",
        str(root),
        "--initdb",
        "add",
        *(packages or BASE_PACKAGES),
    ]


def bootstrap_base(
    root: Path,
    mirror: str,
    release: str,
    apk_static: Path,
    packages: list[str] | None = None,
    timeout: float | None = None,
) -> runner.CommandResult:
    """Initialize the package database and install the base package set.

    Args:
        root: Target root directory.
        mirror: Mirror base URL.
        release: Alpine release.
        apk_static: Path to the extracted apk.static binary.
        packages: Packages to install (defaults to BASE_PACKAGES).
        timeout: Command timeout in seconds (None = no timeout).

    Returns:
        CommandResult of the apk.static run.

    Raises:
        CommandExecutionError: If apk.static fails.
    """
    repository_url = f"{mirror.rstrip('/')}/v{release}/main"
    cmd = compose_bootstrap_command(apk_static, root, repository_url, packages)

    logger.info("Installing base system into %s from %s", root, repository_url)
    return runner.run_command(cmd, timeout=timeout)


def has_package_database(root: Path) -> bool:
    """Whether the target root has an initialized package database."""
    return (root / PACKAGE_DB_DIR / "installed").exists()


__all__ = [
    "BASE_PACKAGES",
    "PACKAGE_DB_DIR",
    "bootstrap_base",
    "compose_bootstrap_command",
    "has_package_database",
]
