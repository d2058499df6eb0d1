"""Time parsing, timezone and local-day utilities.

Every function that needs a timezone takes the IANA name as an argument; the
machine's local zone is never consulted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from functools import lru_cache
from typing import Iterator

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from path_timeline.errors import InvalidDateRangeError, InvalidTimezoneError


@lru_cache(maxsize=64)
def tzinfo_from_name(tz_name: str) -> tzinfo:
    """Create tzinfo from an IANA timezone name.

    Args:
        tz_name: Timezone name like "Europe/Kyiv".

    Returns:
        tzinfo instance.

    Raises:
        InvalidTimezoneError: If the name is empty or unknown on this system.
    """

    if not isinstance(tz_name, str) or not tz_name.strip():
        raise InvalidTimezoneError("Timezone is required, e.g. Europe/Kyiv")
    try:
        return ZoneInfo(tz_name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezoneError(f"Unknown timezone: {tz_name!r}. Example: Europe/Kyiv") from exc


def validate_timezone(tz_name: str) -> str:
    """Return the stripped zone name or raise InvalidTimezoneError."""

    tzinfo_from_name(tz_name)
    return tz_name.strip()


def dt_from_epoch_ms(epoch_ms: int, tz_name: str) -> datetime:
    """Convert epoch milliseconds to timezone-aware datetime.

    Args:
        epoch_ms: Unix epoch milliseconds.
        tz_name: IANA timezone name.

    Returns:
        Timezone-aware datetime.
    """

    tz = tzinfo_from_name(tz_name)
    return datetime.fromtimestamp(epoch_ms / 1000.0, tz=tz)


def epoch_ms_from_dt(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds.

    Args:
        dt: Datetime. If naive, will be treated as UTC (discouraged).

    Returns:
        Epoch milliseconds.
    """

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return round(dt.timestamp() * 1000)


def parse_dt(text: str, tz_name: str) -> datetime:
    """Parse user-provided datetime text to a timezone-aware datetime.

    Supported formats:
      - "YYYY-MM-DD HH:MM:SS"
      - "YYYY-MM-DDTHH:MM:SS"
      - with optional offset, e.g. "+03:00" or "Z"

    If the offset is missing, ``tz_name`` is assumed.

    Raises:
        ValueError: If the text cannot be parsed.
    """

    s = text.strip().replace("T", " ")
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    tz = tzinfo_from_name(tz_name)
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as exc:
        raise ValueError(f"Cannot parse datetime: {text!r}. Expected e.g. 2025-09-20 09:30:00") from exc

    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def local_date(epoch_ms: int, tz_name: str) -> date:
    """Calendar date of an instant in the given zone."""

    return dt_from_epoch_ms(epoch_ms, tz_name).date()


def local_midnight_ms(day: date, tz_name: str) -> int:
    """Epoch ms of 00:00 local time on ``day``."""

    tz = tzinfo_from_name(tz_name)
    return epoch_ms_from_dt(datetime.combine(day, time.min).replace(tzinfo=tz))


def local_day_bounds_ms(day: date, tz_name: str) -> tuple[int, int]:
    """Return [start, end) epoch ms of a local calendar day."""

    return local_midnight_ms(day, tz_name), local_midnight_ms(day + timedelta(days=1), tz_name)


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive range of local calendar dates."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidDateRangeError(
                f"Start date {self.start.isoformat()} is after end date {self.end.isoformat()}"
            )

    @classmethod
    def parse(cls, start_text: str, end_text: str) -> DateRange:
        """Parse two ISO dates ("YYYY-MM-DD").

        Raises:
            InvalidDateRangeError: If either date is malformed or start > end.
        """

        try:
            start = date.fromisoformat(start_text.strip())
            end = date.fromisoformat(end_text.strip())
        except (AttributeError, ValueError) as exc:
            raise InvalidDateRangeError(
                f"Invalid date range {start_text!r} - {end_text!r}. Expected YYYY-MM-DD"
            ) from exc
        return cls(start, end)

    @classmethod
    def preset(cls, name: str, today: date) -> DateRange:
        """Build a named range ending on ``today`` (today, last_7_days, last_30_days)."""

        days = {"today": 1, "last_7_days": 7, "last_30_days": 30}.get(name)
        if days is None:
            raise InvalidDateRangeError(f"Unknown range preset: {name!r}")
        return cls(today - timedelta(days=days - 1), today)

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def iter_days(self) -> Iterator[date]:
        cur = self.start
        while cur <= self.end:
            yield cur
            cur += timedelta(days=1)

    def to_epoch_ms(self, tz_name: str) -> tuple[int, int]:
        """Convert to epoch-ms [start, end) in tz."""

        return local_midnight_ms(self.start, tz_name), local_midnight_ms(self.end + timedelta(days=1), tz_name)


def today_in(tz_name: str, now: datetime | None = None) -> date:
    """Current date in the user's zone (``now`` is injectable for tests)."""

    tz = tzinfo_from_name(tz_name)
    current = now if now is not None else datetime.now(UTC)
    return current.astimezone(tz).date()
