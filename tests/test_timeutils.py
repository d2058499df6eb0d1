"""Tests for timezone and local-day helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from path_timeline.errors import InvalidDateRangeError, InvalidTimezoneError
from path_timeline.timeutils import (
    DateRange,
    dt_from_epoch_ms,
    epoch_ms_from_dt,
    local_date,
    local_day_bounds_ms,
    local_midnight_ms,
    parse_dt,
    today_in,
    validate_timezone,
)


def _ms(*args) -> int:
    return epoch_ms_from_dt(datetime(*args, tzinfo=UTC))


class TestTimezones:
    """Test zone validation."""

    def test_valid_zone_is_stripped(self):
        """Whitespace around a valid name is tolerated."""
        assert validate_timezone(" Europe/Kyiv ") == "Europe/Kyiv"

    @pytest.mark.parametrize("name", ["", "   ", "Mars/Olympus_Mons", "not a zone"])
    def test_invalid_zone(self, name):
        """Unknown or empty zones raise a ValueError subclass."""
        with pytest.raises(InvalidTimezoneError):
            validate_timezone(name)
        assert issubclass(InvalidTimezoneError, ValueError)


class TestConversions:
    """Test epoch/local conversions."""

    def test_epoch_round_trip_in_zone(self):
        """Local wall clock reflects the zone offset."""
        ms = _ms(2025, 9, 20, 20, 0)
        local = dt_from_epoch_ms(ms, "Europe/Kyiv")
        assert (local.hour, local.minute) == (23, 0)
        assert epoch_ms_from_dt(local) == ms

    def test_local_date_depends_on_zone(self):
        """The same instant falls on different dates in different zones."""
        ms = _ms(2025, 9, 20, 22, 0)
        assert local_date(ms, "Europe/Kyiv") == date(2025, 9, 21)
        assert local_date(ms, "America/New_York") == date(2025, 9, 20)

    def test_parse_dt_offsets(self):
        """Z and explicit offsets are honoured; naive text uses the given zone."""
        assert epoch_ms_from_dt(parse_dt("2025-09-20T20:00:00Z", "Europe/Kyiv")) == _ms(2025, 9, 20, 20, 0)
        assert epoch_ms_from_dt(parse_dt("2025-09-20 23:00:00", "Europe/Kyiv")) == _ms(2025, 9, 20, 20, 0)
        with pytest.raises(ValueError):
            parse_dt("yesterday", "UTC")

    def test_midnight(self):
        """Local midnight of a summer day in Kyiv is 21:00 UTC the day before."""
        assert local_midnight_ms(date(2025, 9, 21), "Europe/Kyiv") == _ms(2025, 9, 20, 21, 0)

    def test_dst_day_has_25_hours(self):
        """The autumn DST change day is longer than 24 hours."""
        start, end = local_day_bounds_ms(date(2025, 10, 26), "Europe/Kyiv")
        assert end - start == 25 * 3_600_000


class TestDateRange:
    """Test inclusive local date ranges."""

    def test_parse(self):
        """ISO dates parse; start after end is rejected."""
        dr = DateRange.parse("2025-09-01", "2025-09-30")
        assert dr.days == 30
        with pytest.raises(InvalidDateRangeError):
            DateRange.parse("2025-09-30", "2025-09-01")
        with pytest.raises(InvalidDateRangeError):
            DateRange.parse("09/01/2025", "2025-09-30")

    def test_presets(self):
        """Presets end on the given day."""
        today = date(2025, 9, 21)
        assert DateRange.preset("today", today) == DateRange(today, today)
        assert DateRange.preset("last_7_days", today) == DateRange(date(2025, 9, 15), today)
        assert DateRange.preset("last_30_days", today).days == 30
        with pytest.raises(InvalidDateRangeError):
            DateRange.preset("last_year", today)

    def test_to_epoch_ms_is_half_open(self):
        """End bound is the next local midnight."""
        start, end = DateRange(date(2025, 9, 21), date(2025, 9, 21)).to_epoch_ms("Europe/Kyiv")
        assert start == _ms(2025, 9, 20, 21, 0)
        assert end == _ms(2025, 9, 21, 21, 0)

    def test_iter_days_and_contains(self):
        """Every day is yielded once."""
        dr = DateRange(date(2025, 2, 27), date(2025, 3, 2))
        assert list(dr.iter_days()) == [date(2025, 2, 27), date(2025, 2, 28), date(2025, 3, 1), date(2025, 3, 2)]
        assert dr.contains(date(2025, 3, 1))
        assert not dr.contains(date(2025, 3, 3))

    def test_today_in_zone(self):
        """'Today' follows the user's zone, not the machine's."""
        now = datetime(2025, 9, 20, 22, 30, tzinfo=UTC)
        assert today_in("Europe/Kyiv", now) == date(2025, 9, 21)
        assert today_in("America/New_York", now) == date(2025, 9, 20)
