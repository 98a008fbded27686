"""Bootstrap tool and trust key fetching.

This module handles:
- URL construction for the apk-tools-static package on a mirror
- Streaming downloads into the scratch workspace
- Extracting apk.static from the downloaded package
- Installing package signing keys into the target root
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path

import httpx

from alpine_imagegen.errors import DownloadError, ExtractionError

logger = logging.getLogger(__name__)

# Timeout for small requests such as signing keys (seconds)
KEY_TIMEOUT = 30

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 3600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

# Location of the static binary inside the apk-tools-static package
APK_STATIC_MEMBER = "sbin/apk.static"

# Directory for signing keys inside the image
TRUST_KEY_DIR = "etc/apk/keys"


@dataclass
class DownloadResult:
    """Result of a file download."""

    path: Path
    checksum: str
    size_bytes: int


def build_bootstrap_tool_url(
    mirror: str,
    release: str,
    tool_ref: str,
    arch: str = "x86_64",
) -> str:
    """Build the URL of the apk-tools-static package.

    Args:
        mirror: Mirror base URL (e.g., 'http://dl-cdn.alpinelinux.org/alpine').
        release: Alpine release (e.g., '3.2').
        tool_ref: Package file name (e.g., 'apk-tools-static-2.6.5-r1.apk').
        arch: Package architecture.

    Returns:
        Full URL of the package in the release's main repository.
    """
    return f"{mirror.rstrip('/')}/v{release}/main/{arch}/{tool_ref}"


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Download a file, removing any partial file on failure.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        DownloadResult with path, checksum, and size.

    Raises:
        DownloadError: If download fails.
    """
    logger.info("Downloading %s to %s", url, dest_path)

    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()

            total_bytes = 0
            sha256 = hashlib.sha256()

            dest_path.parent.mkdir(parents=True, exist_ok=True)

            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    sha256.update(chunk)
                    total_bytes += len(chunk)

    except httpx.HTTPStatusError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"HTTP error downloading {url}: "
            f"{e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(f"Timeout downloading {url}", code="timeout") from e
    except httpx.RequestError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e

    checksum = sha256.hexdigest()
    logger.info(
        "Downloaded %s (%d bytes, checksum: %s)",
        dest_path.name,
        total_bytes,
        checksum[:16] + "...",
    )
    return DownloadResult(path=dest_path, checksum=checksum, size_bytes=total_bytes)


def extract_apk_static(archive_path: Path, dest_dir: Path) -> Path:
    """Extract apk.static from an apk-tools-static package.

    An .apk package is a concatenation of gzip-compressed tar segments
    (signature, control, data), so the archive is read with ignore_zeros
    to walk past the end-of-archive marker of each segment.

    Args:
        archive_path: Path to the downloaded package.
        dest_dir: Workspace directory to extract into.

    Returns:
        Path to the extracted, executable apk.static.

    Raises:
        ExtractionError: If the package is unreadable or lacks apk.static.
    """
    logger.info("Extracting %s from %s", APK_STATIC_MEMBER, archive_path.name)

    dest_path = dest_dir / APK_STATIC_MEMBER
    try:
        with tarfile.open(archive_path, "r:gz", ignore_zeros=True) as tar:
            member = next(
                (m for m in tar if m.name.lstrip("./") == APK_STATIC_MEMBER), None
            )
            if member is None or not member.isfile():
                raise ExtractionError(
                    f"{APK_STATIC_MEMBER} not found in {archive_path.name}",
                    code="member_not_found",
                )
            source = tar.extractfile(member)
            if source is None:
                raise ExtractionError(
                    f"Cannot read {APK_STATIC_MEMBER} from {archive_path.name}",
                    code="member_not_found",
                )

            dest_path.parent.mkdir(parents=True, exist_ok=True)
            with source, dest_path.open("wb") as out:
                shutil.copyfileobj(source, out)

    except (tarfile.TarError, EOFError) as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="tar_error",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path}: {e}",
            code="os_error",
        ) from e

    dest_path.chmod(0o755)
    logger.info("Extracted bootstrap tool to %s", dest_path)
    return dest_path


def fetch_bootstrap_tool(
    client: httpx.Client,
    mirror: str,
    release: str,
    tool_ref: str,
    workspace: Path,
    arch: str = "x86_64",
    timeout: float = DOWNLOAD_TIMEOUT,
) -> Path:
    """Download apk-tools-static into the workspace and extract apk.static.

    The workspace is created on first use and reused across runs; it is
    never inside the target root.

    Args:
        client: HTTPX client instance.
        mirror: Mirror base URL.
        release: Alpine release.
        tool_ref: Package file name.
        workspace: Scratch workspace directory.
        arch: Package architecture.
        timeout: Download timeout in seconds.

    Returns:
        Path to the extracted apk.static.

    Raises:
        DownloadError: If download fails.
        ExtractionError: If extraction fails.
    """
    url = build_bootstrap_tool_url(mirror, release, tool_ref, arch)
    workspace.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        dir=workspace, suffix=".tmp", delete=False
    ) as tmp_file:
        tmp_path = Path(tmp_file.name)

    try:
        download_file(client, url, tmp_path, timeout=timeout)
        archive_path = workspace / Path(tool_ref).name
        shutil.move(str(tmp_path), str(archive_path))
        return extract_apk_static(archive_path, workspace)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


def fetch_trust_key(
    client: httpx.Client,
    key_host: str,
    key_name: str,
    timeout: float = KEY_TIMEOUT,
) -> bytes:
    """Fetch one public signing key from the key host.

    Raises:
        DownloadError: If fetch fails.
    """
    url = f"{key_host.rstrip('/')}/{key_name}"
    logger.debug("Fetching signing key %s", url)

    try:
        response = client.get(url, timeout=timeout)
        response.raise_for_status()
        return response.content

    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"HTTP error fetching key {key_name}: {e.response.status_code}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(
            f"Timeout fetching key {key_name} from {key_host}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        raise DownloadError(
            f"Network error fetching key {key_name}: {e}",
            code="network_error",
        ) from e


def import_trust_keys(
    client: httpx.Client,
    root: Path,
    key_names: list[str],
    key_host: str,
    timeout: float = KEY_TIMEOUT,
) -> list[Path]:
    """Install signing keys into the target root's apk key directory.

    Args:
        client: HTTPX client instance.
        root: Target root directory.
        key_names: Key file names on the key host.
        key_host: Base URL of the key host.
        timeout: Request timeout in seconds.

    Returns:
        Paths of the written key files.

    Raises:
        DownloadError: If any key cannot be fetched.
    """
    key_dir = root / TRUST_KEY_DIR
    key_dir.mkdir(parents=True, exist_ok=True)

    written: list[Path] = []
    for key_name in key_names:
        if "/" in key_name:
            raise DownloadError(
                f"Invalid key name: {key_name}", code="invalid_key_name"
            )
        content = fetch_trust_key(client, key_host, key_name, timeout=timeout)
        key_path = key_dir / key_name
        key_path.write_bytes(content)
        written.append(key_path)

    logger.info("Installed %d signing key(s) into %s", len(written), key_dir)
    return written


__all__ = [
    "APK_STATIC_MEMBER",
    "DownloadResult",
    "TRUST_KEY_DIR",
    "build_bootstrap_tool_url",
    "download_file",
    "extract_apk_static",
    "fetch_bootstrap_tool",
    "fetch_trust_key",
    "import_trust_keys",
]
