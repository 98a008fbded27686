"""Pydantic model for the build configuration.

A BuildConfiguration holds the per-image inputs of one pipeline run:
which Alpine release to install, where from, into which directory, and
how the resulting image identifies itself.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from alpine_imagegen.errors import ConfigurationError

DEFAULT_DOCS_URL = "https://wiki.alpinelinux.org"

# Required fields and the CLI flags that set them, in usage order
REQUIRED_FIELDS: dict[str, str] = {
    "release": "-r/--release",
    "apk_tools": "-a/--apk-tools",
    "install_dir": "-d/--install-dir",
    "mirror": "-m/--mirror",
    "image_name": "-i/--image-name",
    "name": "-p/--name",
}

REPOSITORY_CHANNELS = ("main", "community")


class BuildConfiguration(BaseModel):
    """Inputs for a single image build.

    Attributes:
        release: Alpine release (e.g., '3.2'), used as 'v<release>' in mirror paths.
        apk_tools: File name of the apk-tools-static package on the mirror.
        install_dir: Target root directory (trailing separators stripped).
        mirror: Base URL of the package mirror.
        image_name: Base name of the output archive.
        name: Display name written to /etc/motd and /etc/product.
        description: Free-form description written to /etc/product.
        docs_url: Documentation URL written to /etc/motd and /etc/product.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    release: str = Field(min_length=1, description="Alpine release")
    apk_tools: str = Field(min_length=1, description="apk-tools-static package file")
    install_dir: Path = Field(description="Target root directory")
    mirror: str = Field(min_length=1, description="Package mirror base URL")
    image_name: str = Field(min_length=1, description="Archive base name")
    name: str = Field(min_length=1, description="Display name")
    description: str = Field(default="", description="Image description")
    docs_url: str = Field(default=DEFAULT_DOCS_URL, description="Documentation URL")

    @field_validator(
        "release", "apk_tools", "mirror", "image_name", "name", mode="before"
    )
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        """Strip surrounding whitespace from text fields."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v: Any) -> Any:
        """Treat a missing description as empty."""
        if v is None:
            return ""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("docs_url", mode="before")
    @classmethod
    def default_docs_url(cls, v: Any) -> Any:
        """Fall back to DEFAULT_DOCS_URL when absent or blank."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_DOCS_URL
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("install_dir", mode="before")
    @classmethod
    def normalize_install_dir(cls, v: Any) -> Any:
        """Strip trailing separators; reject an empty path."""
        text = str(v).strip() if v is not None else ""
        if not text:
            raise ValueError("install_dir must not be empty")
        stripped = text.rstrip("/")
        return Path(stripped or "/")

    @field_validator("install_dir")
    @classmethod
    def validate_install_dir(cls, v: Path) -> Path:
        """Refuse to treat the host root as a target."""
        if v == Path("/"):
            raise ValueError("install_dir must not be the filesystem root")
        return v

    @field_validator("mirror")
    @classmethod
    def normalize_mirror(cls, v: str) -> str:
        """Strip trailing '/' so derived URLs never contain '//'."""
        return v.rstrip("/")

    @field_validator("image_name")
    @classmethod
    def validate_image_name(cls, v: str) -> str:
        """Validate image_name is usable as a file name."""
        if "/" in v or any(ch.isspace() for ch in v):
            raise ValueError("image_name must not contain '/' or whitespace")
        return v

    def repository_url(self, channel: str) -> str:
        """Return the repository URL for a channel (e.g., 'main')."""
        return f"{self.mirror}/v{self.release}/{channel}"

    def repository_urls(self) -> list[str]:
        """Return repository URLs for all configured channels."""
        return [self.repository_url(channel) for channel in REPOSITORY_CHANNELS]


def find_missing_fields(data: dict[str, Any]) -> list[str]:
    """Return required field names that are absent or blank in data."""
    missing: list[str] = []
    for field_name in REQUIRED_FIELDS:
        value = data.get(field_name)
        if value is None or not str(value).strip():
            missing.append(field_name)
    return missing


def parse_build_configuration(data: dict[str, Any]) -> BuildConfiguration:
    """Validate raw values into a BuildConfiguration.

    Args:
        data: Mapping of field names to raw values (None means absent).

    Returns:
        Validated BuildConfiguration.

    Raises:
        ConfigurationError: If a required field is missing or a value is invalid.
    """
    missing = find_missing_fields(data)
    if missing:
        flags = ", ".join(f"{f} ({REQUIRED_FIELDS[f]})" for f in missing)
        raise ConfigurationError(
            f"Missing required build options: {flags}", missing=missing
        )

    values = {k: v for k, v in data.items() if v is not None}
    try:
        return BuildConfiguration.model_validate(values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid build configuration: {problems}") from e


__all__ = [
    "DEFAULT_DOCS_URL",
    "REPOSITORY_CHANNELS",
    "REQUIRED_FIELDS",
    "BuildConfiguration",
    "find_missing_fields",
    "parse_build_configuration",
]
