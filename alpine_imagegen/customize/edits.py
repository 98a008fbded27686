"""Idempotent file edits applied to the target root.

Each edit computes the desired file content (or link target), compares it
with what is on disk, and writes only when they differ. Applying any edit
twice leaves the same result as applying it once.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

logger = logging.getLogger(__name__)

RESOLV_CONF = "etc/resolv.conf"
REPOSITORIES = "etc/apk/repositories"
SSHD_CONFIG = "etc/ssh/sshd_config"
MOTD = "etc/motd"
PRODUCT = "etc/product"

MOTD_TEMPLATE = """\
Welcome to {name} ({build_date})

Documentation: {docs_url}

"""

PRODUCT_TEMPLATE = """\
Name: {name}
Image: {name} {build_date}
Documentation: {docs_url}
Description: {description}
"""

# Global option line in sshd_config, commented out or not
_OPTION_LINE = re.compile(
    r"^\s*(?P<comment>#\s*)?(?P<key>[A-Za-z][A-Za-z0-9]*)"
    r"(?:\s*=\s*|\s+)(?P<value>\S.*)$"
)
_MATCH_LINE = re.compile(r"^\s*Match\s", re.IGNORECASE)


def image_path(root: Path, path: str) -> Path:
    """Map an in-image absolute path onto the target root."""
    return root / path.lstrip("/")


def write_if_changed(path: Path, content: str) -> bool:
    """Write content unless the file already holds exactly that content.

    Returns:
        True if the file was written.
    """
    if path.is_file() and not path.is_symlink():
        if path.read_text(encoding="utf-8", errors="surrogateescape") == content:
            logger.debug("%s already up to date", path)
            return False

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.is_symlink():
        path.unlink()
    path.write_text(content, encoding="utf-8", errors="surrogateescape")
    logger.info("Wrote %s", path)
    return True


def render_resolv_conf(nameservers: list[str]) -> str:
    """Render resolv.conf content with one line per nameserver."""
    return "".join(f"nameserver {ns}\n" for ns in nameservers)


def write_resolv_conf(root: Path, nameservers: list[str]) -> bool:
    """Overwrite /etc/resolv.conf with the given nameservers."""
    return write_if_changed(
        image_path(root, RESOLV_CONF), render_resolv_conf(nameservers)
    )


def write_repositories(root: Path, repository_urls: list[str]) -> bool:
    """Overwrite /etc/apk/repositories with the given repository URLs."""
    content = "".join(f"{url}\n" for url in repository_urls)
    return write_if_changed(image_path(root, REPOSITORIES), content)


def set_config_option(text: str, key: str, value: str) -> str:
    """Set a global option in sshd_config-style text.

    The first global occurrence of the option, commented out or not,
    becomes ``<key> <value>``; later active occurrences are dropped so
    no conflicting value survives. Lines inside Match blocks are left
    untouched. If the option does not occur, it is inserted before the
    first Match block, or appended.

    Args:
        text: Current configuration text.
        key: Option name (matched case-insensitively).
        value: Desired option value.

    Returns:
        Updated configuration text ending with a newline.
    """
    desired = f"{key} {value}"
    out: list[str] = []
    placed = False
    match_index: int | None = None

    for line in text.splitlines():
        if match_index is None and _MATCH_LINE.match(line):
            match_index = len(out)

        if match_index is None:
            m = _OPTION_LINE.match(line)
            if m and m.group("key").lower() == key.lower():
                if not placed:
                    out.append(desired)
                    placed = True
                    continue
                if m.group("comment") is None:
                    continue

        out.append(line)

    if not placed:
        if match_index is None:
            out.append(desired)
        else:
            out.insert(match_index, desired)

    return "\n".join(out) + "\n"


def set_sshd_options(root: Path, options: dict[str, str]) -> bool:
    """Apply option values to the image's sshd_config.

    Args:
        root: Target root directory.
        options: Option name to desired value.

    Returns:
        True if the file was written.
    """
    path = image_path(root, SSHD_CONFIG)
    if path.exists():
        text = path.read_text(encoding="utf-8", errors="surrogateescape")
    else:
        logger.warning("%s not found, creating it", path)
        text = ""

    for key, value in options.items():
        text = set_config_option(text, key, value)

    return write_if_changed(path, text)


def relink_relative(root: Path, link: str, target: str) -> bool:
    """Replace an in-image link with a relative link to the same target.

    Absolute links such as /sbin/init -> /bin/busybox resolve against the
    host once the tree is unpacked elsewhere; the relative form
    (../bin/busybox) resolves within the tree.

    Args:
        root: Target root directory.
        link: In-image absolute path of the link (e.g., '/sbin/init').
        target: In-image absolute path of the real file (e.g., '/bin/busybox').

    Returns:
        True if the link was (re)created.
    """
    relative = os.path.relpath(target, os.path.dirname(link))
    link_path = image_path(root, link)

    if link_path.is_symlink() and os.readlink(link_path) == relative:
        logger.debug("%s already links to %s", link, relative)
        return False

    if link_path.is_symlink() or link_path.exists():
        link_path.unlink()
    link_path.parent.mkdir(parents=True, exist_ok=True)
    link_path.symlink_to(relative)
    logger.info("Linked %s -> %s", link, relative)
    return True


def render_motd(name: str, build_date: str, docs_url: str) -> str:
    """Render the message of the day."""
    return MOTD_TEMPLATE.format(name=name, build_date=build_date, docs_url=docs_url)


def render_product(
    name: str,
    build_date: str,
    docs_url: str,
    description: str,
) -> str:
    """Render the /etc/product descriptor."""
    return PRODUCT_TEMPLATE.format(
        name=name,
        build_date=build_date,
        docs_url=docs_url,
        description=description,
    )


def write_identity_files(
    root: Path,
    name: str,
    build_date: str,
    docs_url: str,
    description: str,
) -> list[Path]:
    """Write /etc/motd and /etc/product.

    Returns:
        Paths of the files that were written.
    """
    written: list[Path] = []
    for rel, content in (
        (MOTD, render_motd(name, build_date, docs_url)),
        (PRODUCT, render_product(name, build_date, docs_url, description)),
    ):
        path = image_path(root, rel)
        if write_if_changed(path, content):
            written.append(path)
    return written


__all__ = [
    "MOTD",
    "PRODUCT",
    "REPOSITORIES",
    "RESOLV_CONF",
    "SSHD_CONFIG",
    "image_path",
    "relink_relative",
    "render_motd",
    "render_product",
    "render_resolv_conf",
    "set_config_option",
    "set_sshd_options",
    "write_identity_files",
    "write_if_changed",
    "write_repositories",
    "write_resolv_conf",
]
