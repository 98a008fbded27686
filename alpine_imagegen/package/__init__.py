"""Image packaging module.

This module handles:
- Exclusion manifests for the root filesystem archive
- Writing the compressed archive of the target root
- Checksums and the JSON build manifest
"""

from alpine_imagegen.package.archive import (
    archive,
    artifact_name,
    generate_manifest,
    load_exclude_manifest,
    write_manifest,
)

__all__ = [
    "archive",
    "artifact_name",
    "generate_manifest",
    "load_exclude_manifest",
    "write_manifest",
]
