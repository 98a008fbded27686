"""Build configuration module.

This module handles:
- Validating per-image build inputs (release, mirror, target directory, ...)
- Loading build configurations from YAML/JSON files
- Merging file values with command-line overrides
"""

from alpine_imagegen.buildconfig.io import (
    load_build_file,
    resolve_build_configuration,
)
from alpine_imagegen.buildconfig.schema import (
    DEFAULT_DOCS_URL,
    REQUIRED_FIELDS,
    BuildConfiguration,
    parse_build_configuration,
)

__all__ = [
    "DEFAULT_DOCS_URL",
    "REQUIRED_FIELDS",
    "BuildConfiguration",
    "load_build_file",
    "parse_build_configuration",
    "resolve_build_configuration",
]
