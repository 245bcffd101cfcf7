"""
Unit tests for the shared validators module.

Tests cover:
- ValidationPatterns regex patterns
- CommonValidators static methods
- Edge cases and error handling
"""

import pytest

from hamro_task.core.validators import CommonValidators, ValidationPatterns


class TestValidationPatterns:
    """Test cases for ValidationPatterns regex patterns."""

    def test_hex_color_pattern(self):
        for color in ["#FFF", "#6366f1", "#22C55E"]:
            assert ValidationPatterns.HEX_COLOR.match(color), f"Should match: {color}"
        for color in ["FFF", "#FFFF", "#GGGGGG", "#12345"]:
            assert not ValidationPatterns.HEX_COLOR.match(color), f"Should not match: {color}"

    def test_email_pattern(self):
        assert ValidationPatterns.EMAIL.match("sita@example.com")
        assert not ValidationPatterns.EMAIL.match("sita@example")
        assert not ValidationPatterns.EMAIL.match("sita sharma@example.com")


class TestCommonValidators:
    """Test cases for CommonValidators static methods."""

    def test_validate_name_trims(self):
        assert CommonValidators.validate_name("  Website redesign ") == "Website redesign"

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_validate_name_empty(self, value):
        with pytest.raises(ValueError, match="cannot be empty"):
            CommonValidators.validate_name(value)

    def test_validate_name_too_long(self):
        with pytest.raises(ValueError, match="255"):
            CommonValidators.validate_name("a" * 256)

    def test_validate_email_lowercases(self):
        assert CommonValidators.validate_email(" Sita@Example.COM ") == "sita@example.com"

    def test_validate_email_invalid(self):
        with pytest.raises(ValueError, match="Invalid email"):
            CommonValidators.validate_email("not-an-email")

    def test_validate_hex_color_normalizes(self):
        assert CommonValidators.validate_hex_color("#6366f1") == "#6366F1"
        assert CommonValidators.validate_hex_color("") == ""

    def test_validate_hex_color_invalid(self):
        with pytest.raises(ValueError, match="Invalid hex color"):
            CommonValidators.validate_hex_color("blue")

    @pytest.mark.parametrize("name, slug", [
        ("General", "general"),
        ("Design Team", "design-team"),
        ("  release_notes  ", "release-notes"),
        ("QA & Testing!", "qa--testing"),
    ])
    def test_slugify_channel_name(self, name, slug):
        assert CommonValidators.slugify_channel_name(name) == slug

    @pytest.mark.parametrize("name", ["   ", "!!!"])
    def test_slugify_channel_name_rejects(self, name):
        with pytest.raises(ValueError):
            CommonValidators.slugify_channel_name(name)

    def test_slugify_channel_name_too_long(self):
        with pytest.raises(ValueError, match="80"):
            CommonValidators.slugify_channel_name("x" * 81)

    def test_validate_timezone(self):
        assert CommonValidators.validate_timezone("Asia/Kathmandu") == "Asia/Kathmandu"
        with pytest.raises(ValueError, match="Unknown timezone"):
            CommonValidators.validate_timezone("Asia/Atlantis")

    @pytest.mark.parametrize("hour", [0, 12, 23, None])
    def test_validate_hour_accepts(self, hour):
        assert CommonValidators.validate_hour(hour) == hour

    @pytest.mark.parametrize("hour", [-1, 24])
    def test_validate_hour_rejects(self, hour):
        with pytest.raises(ValueError, match="between 0 and 23"):
            CommonValidators.validate_hour(hour)
