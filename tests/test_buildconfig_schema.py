"""Tests for build configuration validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from alpine_imagegen.buildconfig.schema import (
    DEFAULT_DOCS_URL,
    BuildConfiguration,
    find_missing_fields,
    parse_build_configuration,
)
from alpine_imagegen.errors import ConfigurationError


def _values(**overrides):
    values = {
        "release": "3.2",
        "apk_tools": "apk-tools-static-2.6.5-r1.apk",
        "install_dir": "/srv/alpine/root",
        "mirror": "http://example/alpine",
        "image_name": "alpine-3",
        "name": "Alpine Linux",
    }
    values.update(overrides)
    return values


class TestBuildConfiguration:
    """Test BuildConfiguration validation."""

    def test_valid_configuration(self):
        """Should accept a complete configuration."""
        config = BuildConfiguration(**_values(description="test image"))
        assert config.release == "3.2"
        assert config.install_dir == Path("/srv/alpine/root")
        assert config.description == "test image"
        assert config.docs_url == DEFAULT_DOCS_URL

    def test_install_dir_trailing_separator_stripped(self):
        """Trailing separators on the target directory are removed."""
        config = BuildConfiguration(**_values(install_dir="/srv/alpine/root///"))
        assert str(config.install_dir) == "/srv/alpine/root"

    def test_install_dir_root_rejected(self):
        """The host filesystem root is never a valid target."""
        with pytest.raises(ValidationError):
            BuildConfiguration(**_values(install_dir="/"))

    def test_mirror_trailing_slash_stripped(self):
        """Derived repository URLs should not contain '//'."""
        config = BuildConfiguration(**_values(mirror="http://example/alpine/"))
        assert config.mirror == "http://example/alpine"
        assert config.repository_urls() == [
            "http://example/alpine/v3.2/main",
            "http://example/alpine/v3.2/community",
        ]

    def test_blank_docs_url_falls_back(self):
        """A blank documentation URL uses the default."""
        config = BuildConfiguration(**_values(docs_url="   "))
        assert config.docs_url == DEFAULT_DOCS_URL

    def test_text_fields_stripped(self):
        """Surrounding whitespace is removed from text fields."""
        config = BuildConfiguration(**_values(name="  Alpine Linux  "))
        assert config.name == "Alpine Linux"

    def test_image_name_with_slash_rejected(self):
        """Image names must be usable as file names."""
        with pytest.raises(ValidationError) as exc_info:
            BuildConfiguration(**_values(image_name="alpine/3"))
        assert "image_name" in str(exc_info.value)

    def test_image_name_with_space_rejected(self):
        with pytest.raises(ValidationError):
            BuildConfiguration(**_values(image_name="alpine 3"))

    def test_unknown_field_rejected(self):
        """Extra fields are forbidden."""
        with pytest.raises(ValidationError):
            BuildConfiguration(**_values(kernel="vanilla"))

    def test_configuration_is_frozen(self):
        config = BuildConfiguration(**_values())
        with pytest.raises(ValidationError):
            config.release = "3.3"


class TestFindMissingFields:
    """Test find_missing_fields."""

    def test_nothing_missing(self):
        assert find_missing_fields(_values()) == []

    def test_absent_and_blank_fields(self):
        """Absent, None and whitespace-only values all count as missing."""
        data = _values(mirror="  ", name=None)
        del data["release"]
        assert find_missing_fields(data) == ["release", "mirror", "name"]


class TestParseBuildConfiguration:
    """Test parse_build_configuration."""

    def test_parse_valid(self):
        config = parse_build_configuration(_values(description=None))
        assert isinstance(config, BuildConfiguration)
        assert config.description == ""

    def test_missing_fields_reported_with_flags(self):
        """Missing fields should be named together with their flags."""
        data = _values(apk_tools=None, image_name="")
        with pytest.raises(ConfigurationError) as exc_info:
            parse_build_configuration(data)

        err = exc_info.value
        assert err.code == "validation"
        assert err.missing == ["apk_tools", "image_name"]
        assert "apk_tools (-a/--apk-tools)" in str(err)
        assert "image_name (-i/--image-name)" in str(err)

    def test_invalid_value_wrapped(self):
        """Pydantic errors surface as ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            parse_build_configuration(_values(image_name="bad name"))
        assert "Invalid build configuration" in str(exc_info.value)
        assert exc_info.value.missing == []
