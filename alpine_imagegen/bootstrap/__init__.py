"""Base system provisioning module.

This module handles:
- Downloading apk-tools-static from the release's mirror path
- Extracting apk.static into a reusable scratch workspace
- Installing package signing keys into the target root
- Initializing the package database and installing alpine-base
"""

from alpine_imagegen.bootstrap.fetch import (
    build_bootstrap_tool_url,
    fetch_bootstrap_tool,
    import_trust_keys,
)
from alpine_imagegen.bootstrap.provision import (
    bootstrap_base,
    has_package_database,
)

__all__ = [
    "bootstrap_base",
    "build_bootstrap_tool_url",
    "fetch_bootstrap_tool",
    "has_package_database",
    "import_trust_keys",
]
