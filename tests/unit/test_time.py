"""Tests for time helpers and duration formatting."""

import pytest
from unittest.mock import patch

from movejob_app.utils.time import (
    MS_PER_HOUR,
    MS_PER_MINUTE,
    days_to_ms,
    format_duration,
    format_epoch_ms,
    ms_to_hours,
    now_ms,
)


class TestFormatDuration:
    """Test HH:MM and HH:MM:SS rendering."""

    @pytest.mark.parametrize("ms,expected", [
        (0, "00:00"),
        (59_999, "00:00"),
        (MS_PER_MINUTE, "00:01"),
        (2 * MS_PER_HOUR + 37 * MS_PER_MINUTE, "02:37"),
        (26 * MS_PER_HOUR, "26:00"),
    ])
    def test_hours_and_minutes(self, ms, expected):
        assert format_duration(ms) == expected

    def test_with_seconds(self):
        ms = MS_PER_HOUR + 2 * MS_PER_MINUTE + 3_456
        assert format_duration(ms, include_seconds=True) == "01:02:03"

    def test_negative_clamped(self):
        assert format_duration(-5 * MS_PER_MINUTE) == "00:00"


class TestConversions:
    """Test unit conversions."""

    def test_ms_to_hours(self):
        assert ms_to_hours(45 * MS_PER_MINUTE) == 0.75

    def test_days_to_ms(self):
        assert days_to_ms(1) == 24 * MS_PER_HOUR
        assert days_to_ms(0.5) == 12 * MS_PER_HOUR

    def test_now_ms_uses_wall_clock(self):
        with patch("movejob_app.utils.time.time.time", return_value=1709280000.5):
            assert now_ms() == 1709280000500

    def test_format_epoch_ms(self):
        assert format_epoch_ms(1709280000000) == "2024-03-01T08:00:00+00:00"
