"""Tests for duration parsing and formatting."""

from __future__ import annotations

import pytest

from nuker.utils.duration import format_duration, parse_duration


class TestParseDuration:
    """Test suite for parse_duration."""

    def test_units(self) -> None:
        """Test every supported unit."""
        assert parse_duration("30s") == 30
        assert parse_duration("15m") == 900
        assert parse_duration("12h") == 43200
        assert parse_duration("14d") == 1209600
        assert parse_duration("2w") == 1209600

    def test_combined(self) -> None:
        """Test units can be combined."""
        assert parse_duration("1d12h") == 129600
        assert parse_duration("1h 30m") == 5400

    def test_plain_numbers(self) -> None:
        """Test numbers and digit strings are seconds."""
        assert parse_duration(3600) == 3600
        assert parse_duration("120") == 120

    def test_case_insensitive(self) -> None:
        """Test units are case-insensitive."""
        assert parse_duration("7D") == 604800

    @pytest.mark.parametrize("value", ["", "abc", "10x", "d10", "5h garbage", -5, True, None])
    def test_invalid(self, value) -> None:
        """Test malformed durations raise ValueError."""
        with pytest.raises(ValueError):
            parse_duration(value)


class TestFormatDuration:
    """Test suite for format_duration."""

    def test_whole_days(self) -> None:
        """Test largest whole units are used."""
        assert format_duration(1209600) == "14d"

    def test_mixed(self) -> None:
        """Test mixed units."""
        assert format_duration(90061) == "1d1h1m1s"

    def test_zero(self) -> None:
        """Test zero and negative durations."""
        assert format_duration(0) == "0s"
        assert format_duration(-10) == "0s"
