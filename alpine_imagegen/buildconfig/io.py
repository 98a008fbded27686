"""Build configuration file loading.

A build configuration can be kept in a YAML or JSON file and combined
with command-line flags; flags win over file values.
"""

import json
from pathlib import Path
from typing import Any

import yaml

from alpine_imagegen.buildconfig.schema import (
    BuildConfiguration,
    parse_build_configuration,
)
from alpine_imagegen.errors import ConfigurationError


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file and return its contents as a dict.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed JSON content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def load_build_file(path: Path) -> dict[str, Any]:
    """Load raw build values from a YAML or JSON file.

    Keys may be written with dashes (``image-name``) or underscores.

    Raises:
        ConfigurationError: If the file is missing, unreadable or malformed.
    """
    if not path.exists():
        raise ConfigurationError(f"Build configuration file not found: {path}")

    try:
        if path.suffix.lower() == ".json":
            data = load_json(path)
        else:
            data = load_yaml(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load {path}: {e}") from e

    return {str(k).replace("-", "_"): v for k, v in data.items()}


def merge_overrides(
    base: dict[str, Any],
    overrides: dict[str, Any],
) -> dict[str, Any]:
    """Overlay non-None override values onto base values."""
    merged = dict(base)
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return merged


def resolve_build_configuration(
    config_file: Path | None,
    overrides: dict[str, Any],
) -> BuildConfiguration:
    """Combine an optional build file with flag overrides and validate.

    Args:
        config_file: Optional YAML/JSON build configuration file.
        overrides: Values from command-line flags (None = not given).

    Returns:
        Validated BuildConfiguration.

    Raises:
        ConfigurationError: If the merged values are incomplete or invalid.
    """
    base = load_build_file(config_file) if config_file is not None else {}
    return parse_build_configuration(merge_overrides(base, overrides))


__all__ = [
    "load_build_file",
    "load_json",
    "load_yaml",
    "merge_overrides",
    "resolve_build_configuration",
]
