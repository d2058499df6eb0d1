"""Tests for human-readable formatting."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from path_timeline.formatting import (
    format_distance,
    format_duration,
    format_duration_compact,
    format_hour_label,
    format_local_datetime,
    format_local_time,
    format_speed,
)
from path_timeline.timeutils import epoch_ms_from_dt


class TestDurations:
    """Test duration texts."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (0, "0m"),
            (59, "0m"),
            (3599, "59m"),
            (9 * 3600, "9h"),
            (90061, "1d 1h 1m"),
            (-5, "0m"),
        ],
    )
    def test_compact(self, seconds, expected):
        """Zero units are omitted."""
        assert format_duration_compact(seconds) == expected

    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (30, "less than a minute"),
            (60, "1 minute"),
            (5400, "1 hour 30 minutes"),
            (2 * 86400 + 3 * 3600 + 120, "2 days 3 hours"),
            (86400, "1 day"),
        ],
    )
    def test_long(self, seconds, expected):
        """Minutes are dropped once a day is reached."""
        assert format_duration(seconds) == expected


class TestOtherFormats:
    """Test distance, speed and time texts."""

    def test_distance(self):
        """Meters below 1 km, kilometers above."""
        assert format_distance(500) == "500 m"
        assert format_distance(1500) == "1.5 km"
        assert format_distance(12_340) == "12.34 km"
        assert format_distance(2000) == "2 km"

    def test_speed(self):
        """Two decimals."""
        assert format_speed(20.5) == "20.50 km/h"

    def test_local_times(self):
        """Times are shown in the given zone."""
        ms = epoch_ms_from_dt(datetime(2025, 9, 20, 20, 5, tzinfo=UTC))
        assert format_local_time(ms, "Europe/Kyiv") == "23:05"
        assert format_local_datetime(ms, "Europe/Kyiv") == "2025-09-20 23:05"

    def test_hour_label(self):
        """Middle of the hour bucket in 12-hour clock."""
        assert format_hour_label(14) == "2:30 PM"
        assert format_hour_label(0) == "12:30 AM"
        assert format_hour_label(12) == "12:30 PM"
