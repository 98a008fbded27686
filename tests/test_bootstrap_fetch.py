"""Tests for bootstrap/fetch.py - bootstrap tool and signing key fetching."""

import hashlib
import io
import tarfile

import httpx
import pytest
import respx

from alpine_imagegen.bootstrap.fetch import (
    DownloadResult,
    build_bootstrap_tool_url,
    download_file,
    extract_apk_static,
    fetch_bootstrap_tool,
    fetch_trust_key,
    import_trust_keys,
)
from alpine_imagegen.errors import DownloadError, ExtractionError

TOOL = "apk-tools-static-2.6.5-r1.apk"
TOOL_URL = f"http://example/alpine/v3.2/main/x86_64/{TOOL}"


class TestBuildBootstrapToolUrl:
    """Tests for build_bootstrap_tool_url."""

    def test_url_layout(self):
        """URL should follow <mirror>/v<release>/main/<arch>/<tool>."""
        url = build_bootstrap_tool_url("http://example/alpine", "3.2", TOOL)
        assert url == TOOL_URL

    def test_trailing_slash_on_mirror(self):
        url = build_bootstrap_tool_url("http://example/alpine/", "3.2", TOOL)
        assert "//v3.2" not in url

    def test_arch(self):
        url = build_bootstrap_tool_url("http://m", "3.9", TOOL, arch="aarch64")
        assert url == f"http://m/v3.9/main/aarch64/{TOOL}"


class TestDownloadFile:
    """Tests for download_file."""

    @respx.mock
    def test_successful_download(self, tmp_path):
        """Should download file successfully."""
        content = b"package bytes"
        respx.get(TOOL_URL).mock(return_value=httpx.Response(200, content=content))

        dest_path = tmp_path / "pkg.apk"
        with httpx.Client() as client:
            result = download_file(client, TOOL_URL, dest_path)

        assert isinstance(result, DownloadResult)
        assert dest_path.read_bytes() == content
        assert result.checksum == hashlib.sha256(content).hexdigest()
        assert result.size_bytes == len(content)

    @respx.mock
    def test_http_error(self, tmp_path):
        """Should raise DownloadError on HTTP error and leave no file."""
        respx.get(TOOL_URL).mock(return_value=httpx.Response(404))

        dest_path = tmp_path / "pkg.apk"
        with httpx.Client() as client, pytest.raises(DownloadError) as exc_info:
            download_file(client, TOOL_URL, dest_path)

        assert exc_info.value.code == "http_error"
        assert "404" in str(exc_info.value)
        assert not dest_path.exists()

    @respx.mock
    def test_network_error(self, tmp_path):
        respx.get(TOOL_URL).mock(side_effect=httpx.ConnectError("refused"))

        with httpx.Client() as client, pytest.raises(DownloadError) as exc_info:
            download_file(client, TOOL_URL, tmp_path / "pkg.apk")

        assert exc_info.value.code == "network_error"

    @respx.mock
    def test_timeout(self, tmp_path):
        respx.get(TOOL_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        with httpx.Client() as client, pytest.raises(DownloadError) as exc_info:
            download_file(client, TOOL_URL, tmp_path / "pkg.apk")

        assert exc_info.value.code == "timeout"


class TestExtractApkStatic:
    """Tests for extract_apk_static."""

    def test_extracts_from_later_segment(self, tmp_path, apk_package_factory):
        """apk.static in a later gzip segment should be found."""
        package = tmp_path / TOOL
        package.write_bytes(apk_package_factory(b"static-binary"))

        result = extract_apk_static(package, tmp_path / "ws")

        assert result == tmp_path / "ws" / "sbin" / "apk.static"
        assert result.read_bytes() == b"static-binary"
        assert result.stat().st_mode & 0o777 == 0o755

    def test_member_missing(self, tmp_path):
        """A package without apk.static raises ExtractionError."""
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:gz") as tar:
            info = tarfile.TarInfo(".PKGINFO")
            info.size = 0
            tar.addfile(info, io.BytesIO(b""))
        package = tmp_path / TOOL
        package.write_bytes(buf.getvalue())

        with pytest.raises(ExtractionError) as exc_info:
            extract_apk_static(package, tmp_path / "ws")
        assert exc_info.value.code == "member_not_found"

    def test_not_an_archive(self, tmp_path):
        package = tmp_path / TOOL
        package.write_bytes(b"<html>not found</html>")

        with pytest.raises(ExtractionError) as exc_info:
            extract_apk_static(package, tmp_path / "ws")
        assert exc_info.value.code == "tar_error"


class TestFetchBootstrapTool:
    """Tests for fetch_bootstrap_tool."""

    @respx.mock
    def test_fetch_and_extract(self, tmp_path, apk_tools_package):
        """Package lands in the workspace and apk.static is extracted."""
        respx.get(TOOL_URL).mock(
            return_value=httpx.Response(200, content=apk_tools_package)
        )
        workspace = tmp_path / "ws"

        with httpx.Client() as client:
            apk_static = fetch_bootstrap_tool(
                client, "http://example/alpine", "3.2", TOOL, workspace
            )

        assert apk_static == workspace / "sbin" / "apk.static"
        assert (workspace / TOOL).exists()
        assert list(workspace.glob("*.tmp")) == []

    @respx.mock
    def test_failed_fetch_leaves_no_temp_file(self, tmp_path):
        respx.get(TOOL_URL).mock(return_value=httpx.Response(500))
        workspace = tmp_path / "ws"

        with httpx.Client() as client, pytest.raises(DownloadError):
            fetch_bootstrap_tool(
                client, "http://example/alpine", "3.2", TOOL, workspace
            )

        assert list(workspace.iterdir()) == []


class TestTrustKeys:
    """Tests for signing key fetching and installation."""

    @respx.mock
    def test_fetch_trust_key(self):
        respx.get("https://keys.example.org/keys/a.rsa.pub").mock(
            return_value=httpx.Response(200, content=b"KEY")
        )
        with httpx.Client() as client:
            content = fetch_trust_key(
                client, "https://keys.example.org/keys/", "a.rsa.pub"
            )
        assert content == b"KEY"

    @respx.mock
    def test_import_trust_keys(self, tmp_path):
        """Keys are written under etc/apk/keys in the target root."""
        respx.get("https://keys.example.org/keys/a.rsa.pub").mock(
            return_value=httpx.Response(200, content=b"A")
        )
        respx.get("https://keys.example.org/keys/b.rsa.pub").mock(
            return_value=httpx.Response(200, content=b"B")
        )

        with httpx.Client() as client:
            written = import_trust_keys(
                client,
                tmp_path,
                ["a.rsa.pub", "b.rsa.pub"],
                "https://keys.example.org/keys",
            )

        key_dir = tmp_path / "etc" / "apk" / "keys"
        assert written == [key_dir / "a.rsa.pub", key_dir / "b.rsa.pub"]
        assert (key_dir / "b.rsa.pub").read_bytes() == b"B"

    @respx.mock
    def test_missing_key(self, tmp_path):
        respx.get("https://keys.example.org/keys/a.rsa.pub").mock(
            return_value=httpx.Response(404)
        )
        with httpx.Client() as client, pytest.raises(DownloadError) as exc_info:
            import_trust_keys(
                client, tmp_path, ["a.rsa.pub"], "https://keys.example.org/keys"
            )
        assert exc_info.value.code == "http_error"

    def test_key_name_with_slash_rejected(self, tmp_path):
        with httpx.Client() as client, pytest.raises(DownloadError):
            import_trust_keys(
                client, tmp_path, ["../evil"], "https://keys.example.org/keys"
            )
