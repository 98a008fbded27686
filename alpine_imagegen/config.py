"""Configuration settings for alpine_imagegen.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

These are host-side settings (where to cache, what to trust, how to log).
Per-image inputs such as release and mirror live in BuildConfiguration.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Alpine signing keys for x86_64 packages
DEFAULT_TRUST_KEYS = [
    "alpine-devel@lists.alpinelinux.org-4a6a0840.rsa.pub",
    "alpine-devel@lists.alpinelinux.org-5243ef4b.rsa.pub",
    "alpine-devel@lists.alpinelinux.org-524d27bb.rsa.pub",
    "alpine-devel@lists.alpinelinux.org-5261cecb.rsa.pub",
]


def _default_workspace_dir() -> Path:
    """Return the default scratch workspace directory."""
    return Path.home() / ".cache" / "alpine-imagegen" / "workspace"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the ALPINE_IMG_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="ALPINE_IMG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    workspace_dir: Path = Field(
        default_factory=_default_workspace_dir,
        description="Scratch workspace for the bootstrap tool and lock files",
    )
    output_dir: Path | None = Field(
        default=None,
        description="Directory for the final archive (uses cwd if not set)",
    )
    exclude_file: Path | None = Field(
        default=None,
        description="Exclusion manifest for the archive (built-in list if not set)",
    )
    guest_tools_installer: Path | None = Field(
        default=None,
        description="Guest tooling installer invoked with the target root",
    )

    # Sources
    arch: str = Field(default="x86_64", description="Package architecture")
    key_host: str = Field(
        default="https://alpinelinux.org/keys",
        description="Host serving the package signing keys",
    )
    trust_keys: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TRUST_KEYS),
        description="Signing key file names to install into the image",
    )
    nameservers: list[str] = Field(
        default_factory=lambda: ["8.8.8.8", "8.8.4.4"],
        description="Resolvers written to /etc/resolv.conf",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_file: Path | None = Field(
        default=None,
        description="Optional log file in addition to console output",
    )

    # Timeouts (in seconds)
    download_timeout: int = Field(
        default=3600,
        ge=10,
        description="Timeout for bootstrap tool and key downloads",
    )
    command_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Timeout for each external command (no timeout if not set)",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["DEFAULT_TRUST_KEYS", "Settings", "get_settings", "print_settings_json"]
