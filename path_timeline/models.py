"""Data models for raw points, timeline segments and their day-local views."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Final, Literal, Union

SOURCE_CSV: Final[str] = "csv"


@dataclass(frozen=True, slots=True)
class RawPoint:
    """A single location sample as delivered by a GPS source.

    Attributes:
        timestamp_ms: Unix epoch milliseconds (UTC).
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        accuracy: Horizontal accuracy in meters, None when the source does not report it.
        altitude: Altitude in meters, None when unknown.
        battery: Battery level in percent, None when unknown.
        velocity: Speed in meters/second, None when unknown.
        device_id: Identifier of the reporting device.
        source_type: Provenance only (owntracks, overland, csv, ...).
    """

    timestamp_ms: int
    latitude: float
    longitude: float
    accuracy: float | None = None
    altitude: float | None = None
    battery: float | None = None
    velocity: float | None = None
    device_id: str = ""
    source_type: str = SOURCE_CSV

    @property
    def timestamp(self) -> datetime:
        """UTC timestamp as an aware datetime."""

        return datetime.fromtimestamp(self.timestamp_ms / 1000.0, tz=UTC)


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float


class MovementType(str, Enum):
    """Transport mode assigned to a trip."""

    WALK = "WALK"
    CAR = "CAR"
    BICYCLE = "BICYCLE"
    TRAIN = "TRAIN"
    FLIGHT = "FLIGHT"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True, slots=True)
class Stay:
    """Time spent at one place.

    Note:
        ``favorite_id`` and ``geocoding_id`` are weak references: the stay
        points at the favorite or geocoding record, it never owns it.
    """

    start_ms: int
    end_ms: int
    latitude: float
    longitude: float
    user_id: str = ""
    location_name: str = ""
    favorite_id: int | None = None
    geocoding_id: str | None = None
    city: str = ""
    country: str = ""
    kind: Literal["stay"] = field(default="stay", init=False)

    @property
    def duration_seconds(self) -> float:
        return (self.end_ms - self.start_ms) / 1000.0


@dataclass(frozen=True, slots=True)
class Trip:
    """Movement between two places."""

    start_ms: int
    end_ms: int
    start_point: Coordinate
    end_point: Coordinate
    distance_meters: float
    movement_type: MovementType
    user_id: str = ""
    avg_speed_kmh: float = 0.0
    max_speed_kmh: float = 0.0
    kind: Literal["trip"] = field(default="trip", init=False)

    @property
    def duration_seconds(self) -> float:
        return (self.end_ms - self.start_ms) / 1000.0


@dataclass(frozen=True, slots=True)
class DataGap:
    """An interval without usable location signal."""

    start_ms: int
    end_ms: int
    user_id: str = ""
    kind: Literal["gap"] = field(default="gap", init=False)

    @property
    def duration_seconds(self) -> float:
        return (self.end_ms - self.start_ms) / 1000.0


Segment = Union[Stay, Trip, DataGap]


@dataclass(frozen=True, slots=True)
class DayLocalView:
    """The part of a segment that falls on one local calendar date.

    Attributes:
        segment: The source segment (shared, never copied).
        calendar_date: Local date this view belongs to.
        start_ms: Clipped start (epoch ms).
        end_ms: Clipped end (epoch ms), exclusive local midnight when clipped.
        is_continuation: True when the segment started on an earlier date.
        continued_from_label: "Continued from ..." text for continuations, else "".
        day_number: 1-based index of this date within the segment's span.
        total_days: Number of local dates the segment touches.
        timezone: IANA zone used for the split.
    """

    segment: Segment
    calendar_date: date
    start_ms: int
    end_ms: int
    is_continuation: bool
    continued_from_label: str
    day_number: int
    total_days: int
    timezone: str

    @property
    def duration_seconds(self) -> float:
        """Exact on-this-day duration; views of one segment sum to its duration."""

        return (self.end_ms - self.start_ms) / 1000.0

    @property
    def is_clipped_at_end(self) -> bool:
        return self.end_ms < self.segment.end_ms

    @property
    def display_end_ms(self) -> int:
        """End shown to users: 23:59:59.999 when the view is cut at midnight."""

        return self.end_ms - 1 if self.is_clipped_at_end else self.end_ms

    @property
    def is_overnight(self) -> bool:
        return self.total_days > 1


@dataclass(frozen=True, slots=True)
class DayGroup:
    calendar_date: date
    items: tuple[DayLocalView, ...]


@dataclass(frozen=True, slots=True)
class PeriodTag:
    """A labelled time range shown as an overlay on the timeline.

    ``end_ms`` of None means the tag is still active.
    """

    tag_name: str
    start_ms: int
    end_ms: int | None = None
    source: str = "manual"
    color: str = ""

    def overlaps(self, start_ms: int, end_ms: int) -> bool:
        if self.start_ms > end_ms:
            return False
        return self.end_ms is None or self.end_ms >= start_ms


class GeometryType(str, Enum):
    POINT = "POINT"
    AREA = "AREA"


@dataclass(frozen=True, slots=True)
class FavoriteLocation:
    """A named point (with match radius) or polygon area owned by a user.

    Attributes:
        favorite_id: Stable identifier.
        name: Display name used for matching stays.
        geometry: POINT or AREA.
        latitude: Point latitude (POINT only).
        longitude: Point longitude (POINT only).
        radius_m: Match radius for POINT favorites.
        polygon: (lat, lon) vertices for AREA favorites.
        city: Optional city name.
        country: Optional country name.
    """

    favorite_id: int
    name: str
    geometry: GeometryType = GeometryType.POINT
    latitude: float = 0.0
    longitude: float = 0.0
    radius_m: float = 75.0
    polygon: tuple[tuple[float, float], ...] = ()
    city: str = ""
    country: str = ""


@dataclass(frozen=True, slots=True)
class UserProfile:
    """Per-user settings; ``timezone`` is the authoritative IANA zone."""

    user_id: str
    timezone: str
