"""Root filesystem archive creation.

This module handles:
- Loading the exclusion manifest
- Writing the gzip-compressed tar of the target root
- Computing checksums and generating a build manifest

The archive is written to a temporary file next to its final location
and renamed into place only once complete.
"""

from __future__ import annotations

import fnmatch
import hashlib
import json
import logging
import os
import tarfile
import tempfile
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from alpine_imagegen.errors import PackagingError
from alpine_imagegen.types import ArtifactInfo

logger = logging.getLogger(__name__)

# Used when no exclusion manifest is configured
DEFAULT_EXCLUDES = [
    "proc/*",
    "sys/*",
    "dev/*",
    "tmp/*",
    "run/*",
    "var/cache/apk/*",
]

ARCHIVE_SUFFIX = ".tar.gz"

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB


def artifact_name(image_name: str, build_date: str) -> str:
    """Return the archive file name for an image and build date."""
    return f"{image_name}-{build_date}{ARCHIVE_SUFFIX}"


def normalize_pattern(pattern: str) -> str:
    """Strip leading './' and '/' so patterns match root-relative names."""
    pattern = pattern.strip()
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern.lstrip("/")


def load_exclude_manifest(path: Path | None) -> list[str]:
    """Load exclusion patterns, one per line.

    Blank lines and lines starting with '#' are ignored.

    Args:
        path: Manifest file, or None for DEFAULT_EXCLUDES.

    Returns:
        Normalized patterns.

    Raises:
        PackagingError: If the manifest cannot be read.
    """
    if path is None:
        return list(DEFAULT_EXCLUDES)

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise PackagingError(
            f"Cannot read exclusion manifest {path}: {e}",
            code="exclude_manifest_error",
        ) from e

    patterns: list[str] = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        normalized = normalize_pattern(stripped)
        if normalized:
            patterns.append(normalized)
    return patterns


def is_excluded(relative_name: str, patterns: list[str]) -> bool:
    """Whether a root-relative member name matches any exclusion pattern."""
    name = normalize_pattern(relative_name)
    if not name:
        return False
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in patterns)


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def archive(root: Path, target: Path, exclude_patterns: list[str]) -> ArtifactInfo:
    """Create a gzip-compressed tar of root's contents.

    Members are named relative to root ('./etc/product'). An excluded
    directory is skipped together with its subtree; a pattern such as
    'proc/*' keeps the directory itself but drops its contents.

    Args:
        root: Target root directory.
        target: Final archive path.
        exclude_patterns: Root-relative glob patterns to skip.

    Returns:
        ArtifactInfo for the written archive.

    Raises:
        PackagingError: If the root is missing or the archive cannot be written.
    """
    if not root.is_dir():
        raise PackagingError(f"Target root does not exist: {root}", code="root_missing")

    patterns = [normalize_pattern(p) for p in exclude_patterns if p.strip()]
    skipped = 0

    def _filter(info: tarfile.TarInfo) -> tarfile.TarInfo | None:
        nonlocal skipped
        if is_excluded(info.name, patterns):
            skipped += 1
            return None
        return info

    logger.info("Archiving %s to %s", root, target)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
    )
    os.close(fd)
    tmp_path = Path(tmp_name)

    try:
        with tarfile.open(tmp_path, "w:gz") as tar:
            tar.add(root, arcname=".", recursive=True, filter=_filter)
        tmp_path.chmod(0o644)
        os.replace(tmp_path, target)
    except (tarfile.TarError, OSError) as e:
        tmp_path.unlink(missing_ok=True)
        raise PackagingError(f"Failed to create archive {target}: {e}") from e

    size_bytes = target.stat().st_size
    sha256 = compute_file_hash(target)
    logger.info(
        "Wrote %s (%d bytes, %d excluded entries, sha256: %s)",
        target.name,
        size_bytes,
        skipped,
        sha256[:16] + "...",
    )

    return ArtifactInfo(
        filename=target.name,
        path=str(target),
        size_bytes=size_bytes,
        sha256=sha256,
        excluded_patterns=patterns,
    )


def generate_manifest(
    artifact: ArtifactInfo,
    build_inputs: dict[str, Any] | None = None,
    stages: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Generate a build manifest for an archive.

    Args:
        artifact: The written archive.
        build_inputs: Optional build configuration values.
        stages: Optional per-stage execution summaries.

    Returns:
        Manifest dictionary suitable for JSON serialization.
    """
    manifest: dict[str, Any] = {
        "version": "1.0",
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "artifact": asdict(artifact),
    }
    if build_inputs:
        manifest["build_inputs"] = build_inputs
    if stages:
        manifest["stages"] = stages
    return manifest


def write_manifest(manifest: dict[str, Any], output_path: Path) -> Path:
    """Write manifest to a JSON file.

    Args:
        manifest: Manifest dictionary.
        output_path: Output file path.

    Returns:
        Path to written manifest file.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with output_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)

    logger.info("Wrote manifest to %s", output_path)
    return output_path


def manifest_path_for(archive_path: Path) -> Path:
    """Return the manifest path that accompanies an archive."""
    name = archive_path.name
    if name.endswith(ARCHIVE_SUFFIX):
        name = name[: -len(ARCHIVE_SUFFIX)]
    return archive_path.with_name(f"{name}.json")


__all__ = [
    "ARCHIVE_SUFFIX",
    "DEFAULT_EXCLUDES",
    "archive",
    "artifact_name",
    "compute_file_hash",
    "generate_manifest",
    "is_excluded",
    "load_exclude_manifest",
    "manifest_path_for",
    "normalize_pattern",
    "write_manifest",
]
