"""Unit tests for iptables version detection."""

import pytest

from ipt.services.version import (
    UtilityCapabilities,
    parse_version,
    LAST_WITHOUT_CHECK,
    LAST_WITHOUT_WAIT,
)
from ipt.core.exceptions import VersionParseError


class TestParseVersion:
    """Tests for parse_version."""

    def test_legacy_banner(self):
        """Should parse the usual banner."""
        assert parse_version("iptables v1.8.4 (legacy)") == (1, 8, 4)

    def test_nf_tables_banner(self):
        """Should parse the nf_tables banner."""
        assert parse_version("iptables v1.8.7 (nf_tables)") == (1, 8, 7)

    def test_banner_without_suffix(self):
        """Version at end of input should parse."""
        assert parse_version("iptables v1.4.10") == (1, 4, 10)

    def test_v_inside_program_name(self):
        """A 'v' not followed by a digit is not the version start."""
        assert parse_version("iptables-save v1.6.1") == (1, 6, 1)

    def test_stops_at_whitespace(self):
        """Text after the version is ignored."""
        assert parse_version("iptables v1.8.4\n") == (1, 8, 4)

    @pytest.mark.parametrize("banner", [
        "",
        "iptables",
        "iptables version unknown",
        "iptables v1.8",
        "iptables v1.8.4.1",
        "iptables v1.8.x",
        "iptables v1..4",
        "iptables v1.8.",
        "iptables v1.8.٤",
    ])
    def test_invalid_banner(self, banner):
        """Malformed banners should raise VersionParseError."""
        with pytest.raises(VersionParseError):
            parse_version(banner)

    def test_error_has_banner(self):
        """The error should carry the banner text."""
        with pytest.raises(VersionParseError) as exc:
            parse_version("iptables v1.8")
        assert exc.value.text == "iptables v1.8"


class TestUtilityCapabilities:
    """Tests for capability derivation."""

    def test_modern_version(self):
        """1.8.4 should support both -C and --wait."""
        caps = UtilityCapabilities.from_version_text("iptables v1.8.4 (legacy)")
        assert caps.has_check is True
        assert caps.has_wait is True

    def test_boundary_check(self):
        """1.4.10 has no -C, 1.4.11 has."""
        assert UtilityCapabilities.from_version(LAST_WITHOUT_CHECK).has_check is False
        assert UtilityCapabilities.from_version((1, 4, 11)).has_check is True

    def test_boundary_wait(self):
        """1.4.19 has no --wait, 1.4.20 has."""
        assert UtilityCapabilities.from_version(LAST_WITHOUT_WAIT).has_wait is False
        assert UtilityCapabilities.from_version((1, 4, 20)).has_wait is True

    def test_between_boundaries(self):
        """1.4.15 has -C but no --wait."""
        caps = UtilityCapabilities.from_version((1, 4, 15))
        assert caps == UtilityCapabilities(has_check=True, has_wait=False)

    def test_old_version(self):
        """1.4.10 from text should have neither."""
        caps = UtilityCapabilities.from_version_text("iptables v1.4.10")
        assert caps.has_check is False
        assert caps.has_wait is False

    def test_component_order(self):
        """Comparison is component-wise, not lexical."""
        assert UtilityCapabilities.from_version((1, 10, 0)).has_wait is True
        assert UtilityCapabilities.from_version((2, 0, 0)).has_check is True

    def test_idempotent(self):
        """The same banner gives equal capabilities."""
        banner = "iptables v1.6.1"
        assert UtilityCapabilities.from_version_text(banner) == UtilityCapabilities.from_version_text(banner)

    def test_error_propagates(self):
        """Bad banner should raise from from_version_text."""
        with pytest.raises(VersionParseError):
            UtilityCapabilities.from_version_text("no version here")
