"""Error taxonomy for alpine_imagegen.

Every error raised by the pipeline derives from ImageBuildError and carries
a stable ``code`` for structured handling:

- configuration errors (missing/invalid input)
- precondition errors (target directory absent, mounts not active)
- transport errors (bootstrap tool, trust keys)
- privileged-operation errors (mount, umount, chroot commands)
- packaging errors (archive creation)
"""

# Error code constants
VALIDATION_ERROR = "validation"
PRECONDITION_ERROR = "precondition_error"
DOWNLOAD_ERROR = "download_error"
EXTRACTION_ERROR = "extraction_error"
MOUNT_ERROR = "mount_error"
COMMAND_ERROR = "command_failed"
PACKAGING_ERROR = "packaging_error"


class ImageBuildError(Exception):
    """Base error for image build operations."""

    def __init__(self, message: str, code: str = "image_build_error") -> None:
        super().__init__(message)
        self.code = code


class ConfigurationError(ImageBuildError):
    """Raised when the build configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing: list[str] | None = None,
        code: str = VALIDATION_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.missing = missing or []


class PreconditionError(ImageBuildError):
    """Raised when a stage precondition does not hold."""

    def __init__(self, message: str, code: str = PRECONDITION_ERROR) -> None:
        super().__init__(message, code=code)


class DownloadError(ImageBuildError):
    """Raised when fetching the bootstrap tool or trust keys fails."""

    def __init__(self, message: str, code: str = DOWNLOAD_ERROR) -> None:
        super().__init__(message, code=code)


class ExtractionError(ImageBuildError):
    """Raised when the bootstrap tool cannot be extracted from its archive."""

    def __init__(self, message: str, code: str = EXTRACTION_ERROR) -> None:
        super().__init__(message, code=code)


class MountError(ImageBuildError):
    """Raised when a mount or unmount under the target root fails."""

    def __init__(self, message: str, code: str = MOUNT_ERROR) -> None:
        super().__init__(message, code=code)


class CommandExecutionError(ImageBuildError):
    """Raised when an external command fails or cannot be started."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = COMMAND_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.exit_code = exit_code


class PackagingError(ImageBuildError):
    """Raised when the final archive cannot be produced."""

    def __init__(self, message: str, code: str = PACKAGING_ERROR) -> None:
        super().__init__(message, code=code)


__all__ = [
    "COMMAND_ERROR",
    "DOWNLOAD_ERROR",
    "EXTRACTION_ERROR",
    "MOUNT_ERROR",
    "PACKAGING_ERROR",
    "PRECONDITION_ERROR",
    "VALIDATION_ERROR",
    "CommandExecutionError",
    "ConfigurationError",
    "DownloadError",
    "ExtractionError",
    "ImageBuildError",
    "MountError",
    "PackagingError",
    "PreconditionError",
]
