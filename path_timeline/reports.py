"""Tabular report views over stays, trips and data gaps, with CSV export."""

from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Generic, Sequence, TypeVar

from path_timeline.formatting import format_distance, format_duration_compact, format_local_datetime
from path_timeline.models import DataGap, MovementType, Segment, Stay, Trip
from path_timeline.timeutils import DateRange, tzinfo_from_name

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown Location"
UNKNOWN_ORIGIN = "Unknown Origin"
UNKNOWN_DESTINATION = "Unknown Destination"

STAY_HEADERS = ["Start Date", "End Date", "Duration", "Duration (minutes)", "Location Name", "Latitude", "Longitude"]
TRIP_HEADERS = [
    "Start Date",
    "End Date",
    "Duration",
    "Duration (minutes)",
    "Distance, meters",
    "Origin",
    "Origin Latitude",
    "Origin Longitude",
    "Destination",
    "Destination Latitude",
    "Destination Longitude",
    "Transport Mode",
]
GAP_HEADERS = ["Start Date", "End Date", "Duration (minutes)", "Duration"]

REPORT_KINDS = ("stays", "trips", "data_gaps")

# Bucket bounds in seconds / meters: [low, high)
DURATION_BUCKETS = {"short": (0.0, 3600.0), "medium": (3600.0, 6 * 3600.0), "long": (6 * 3600.0, math.inf)}
DISTANCE_BUCKETS = {"short": (0.0, 1000.0), "medium": (1000.0, 10_000.0), "long": (10_000.0, math.inf)}


@dataclass(frozen=True, slots=True)
class StayRow:
    segment: Stay
    location_name: str

    @property
    def segment_id(self) -> int:
        return self.segment.start_ms

    @property
    def search_text(self) -> str:
        return self.location_name


@dataclass(frozen=True, slots=True)
class TripRow:
    segment: Trip
    origin: str
    origin_latitude: float
    origin_longitude: float
    destination: str
    destination_latitude: float
    destination_longitude: float

    @property
    def segment_id(self) -> int:
        return self.segment.start_ms

    @property
    def search_text(self) -> str:
        return f"{self.origin}\n{self.destination}"


@dataclass(frozen=True, slots=True)
class GapRow:
    segment: DataGap

    @property
    def segment_id(self) -> int:
        return self.segment.start_ms

    @property
    def search_text(self) -> str:
        return ""


def stay_rows(segments: Sequence[Segment]) -> list[StayRow]:
    return [StayRow(s, s.location_name or UNKNOWN_LOCATION) for s in segments if isinstance(s, Stay)]


def trip_rows(segments: Sequence[Segment]) -> list[TripRow]:
    """Trip rows; origin and destination come from the stays right before and after."""

    rows: list[TripRow] = []
    for i, seg in enumerate(segments):
        if not isinstance(seg, Trip):
            continue
        before = segments[i - 1] if i > 0 else None
        after = segments[i + 1] if i + 1 < len(segments) else None
        origin = before.location_name if isinstance(before, Stay) and before.end_ms == seg.start_ms else ""
        destination = after.location_name if isinstance(after, Stay) and after.start_ms == seg.end_ms else ""
        rows.append(
            TripRow(
                segment=seg,
                origin=origin or UNKNOWN_ORIGIN,
                origin_latitude=seg.start_point.latitude,
                origin_longitude=seg.start_point.longitude,
                destination=destination or UNKNOWN_DESTINATION,
                destination_latitude=seg.end_point.latitude,
                destination_longitude=seg.end_point.longitude,
            )
        )
    return rows


def gap_rows(segments: Sequence[Segment]) -> list[GapRow]:
    return [GapRow(s) for s in segments if isinstance(s, DataGap)]


_COMMON_COLUMNS: dict[str, Callable[[Any], Any]] = {
    "start": lambda r: r.segment.start_ms,
    "end": lambda r: r.segment.end_ms,
    "duration": lambda r: r.segment.duration_seconds,
}
COLUMNS: dict[str, dict[str, Callable[[Any], Any]]] = {
    "stays": {**_COMMON_COLUMNS, "location_name": lambda r: r.location_name.lower()},
    "trips": {
        **_COMMON_COLUMNS,
        "distance": lambda r: r.segment.distance_meters,
        "origin": lambda r: r.origin.lower(),
        "destination": lambda r: r.destination.lower(),
        "movement_type": lambda r: r.segment.movement_type.value,
    },
    "data_gaps": dict(_COMMON_COLUMNS),
}

R = TypeVar("R", StayRow, TripRow, GapRow)


@dataclass(frozen=True)
class Page(Generic[R]):
    items: tuple[R, ...]
    number: int
    size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total_items / self.size))


class ReportTable(Generic[R]):
    """An immutable, chainable view: every operation returns a new table.

    Example:
        table.search("home").sort_by("duration", descending=True).page(1, 10)
    """

    def __init__(self, kind: str, rows: Sequence[R]) -> None:
        if kind not in COLUMNS:
            raise ValueError(f"Unknown report kind: {kind!r}")
        self.kind = kind
        self.rows: tuple[R, ...] = tuple(rows)

    def __len__(self) -> int:
        return len(self.rows)

    def _with(self, rows: Sequence[R]) -> ReportTable[R]:
        return ReportTable(self.kind, rows)

    def search(self, text: str) -> ReportTable[R]:
        """Case-insensitive substring match on location names (origin/destination for trips).

        Data gaps have no text, so searching them leaves the table unchanged.
        """

        needle = (text or "").strip().casefold()
        if not needle or self.kind == "data_gaps":
            return self
        return self._with([r for r in self.rows if needle in r.search_text.casefold()])

    def sort_by(self, column: str, descending: bool = False) -> ReportTable[R]:
        """Stable sort; rows with equal keys keep their current order."""

        key = COLUMNS[self.kind].get(column)
        if key is None:
            raise ValueError(f"Cannot sort {self.kind} by {column!r}; choose from {sorted(COLUMNS[self.kind])}")
        return self._with(sorted(self.rows, key=key, reverse=descending))

    def between(self, start_ms: int, end_ms: int) -> ReportTable[R]:
        """Rows whose segment starts in [start_ms, end_ms)."""

        return self._with([r for r in self.rows if start_ms <= r.segment.start_ms < end_ms])

    def filter_duration(self, bucket: str | None) -> ReportTable[R]:
        """Keep rows in a duration bucket: short (< 1h), medium (1-6h), long (6h+)."""

        if not bucket:
            return self
        if bucket not in DURATION_BUCKETS:
            raise ValueError(f"Unknown duration filter: {bucket!r}")
        low, high = DURATION_BUCKETS[bucket]
        return self._with([r for r in self.rows if low <= r.segment.duration_seconds < high])

    def filter_distance(self, bucket: str | None) -> ReportTable[R]:
        """Trips only: short (< 1 km), medium (1-10 km), long (10 km+)."""

        if not bucket:
            return self
        if self.kind != "trips":
            raise ValueError("Distance filter applies to trips only")
        if bucket not in DISTANCE_BUCKETS:
            raise ValueError(f"Unknown distance filter: {bucket!r}")
        low, high = DISTANCE_BUCKETS[bucket]
        return self._with([r for r in self.rows if low <= r.segment.distance_meters < high])

    def filter_movement(self, movement_type: MovementType | str | None) -> ReportTable[R]:
        if not movement_type:
            return self
        if self.kind != "trips":
            raise ValueError("Transport mode filter applies to trips only")
        wanted = MovementType(movement_type)
        return self._with([r for r in self.rows if r.segment.movement_type == wanted])

    def page(self, number: int = 1, size: int = 10) -> Page[R]:
        """1-based page; pages past the end are empty."""

        if number < 1 or size < 1:
            raise ValueError("page number and size must be >= 1")
        start = (number - 1) * size
        return Page(items=self.rows[start : start + size], number=number, size=size, total_items=len(self.rows))


def build_table(kind: str, segments: Sequence[Segment]) -> ReportTable:
    """Table of one kind ("stays", "trips", "data_gaps") in time order."""

    if kind == "stays":
        return ReportTable(kind, stay_rows(segments))
    if kind == "trips":
        return ReportTable(kind, trip_rows(segments))
    if kind == "data_gaps":
        return ReportTable(kind, gap_rows(segments))
    raise ValueError(f"Unknown report kind: {kind!r}")


def quick_stats(segments: Sequence[Segment]) -> dict[str, int]:
    """Counts shown above the report tabs."""

    return {
        "Stays": sum(1 for s in segments if isinstance(s, Stay)),
        "Trips": sum(1 for s in segments if isinstance(s, Trip)),
        "Data Gaps": sum(1 for s in segments if isinstance(s, DataGap)),
    }


def count_text(kind: str, n: int) -> str:
    """E.g. "3 stays", "1 trip", "2 data gaps"."""

    singular = {"stays": "stay", "trips": "trip", "data_gaps": "data gap"}[kind]
    return f"{n} {singular}" if n == 1 else f"{n} {singular}s"


def _clean(text: str) -> str:
    return " ".join(text.replace("\r", " ").replace("\n", " ").split())


def _csv_record(row: StayRow | TripRow | GapRow, tz_name: str) -> list[Any]:
    seg = row.segment
    start = format_local_datetime(seg.start_ms, tz_name)
    end = format_local_datetime(seg.end_ms, tz_name)
    duration = format_duration_compact(seg.duration_seconds)
    minutes = round(seg.duration_seconds / 60.0)
    if isinstance(row, StayRow):
        return [start, end, duration, minutes, _clean(row.location_name), f"{row.segment.latitude:.6f}", f"{row.segment.longitude:.6f}"]
    if isinstance(row, TripRow):
        return [
            start,
            end,
            duration,
            minutes,
            round(row.segment.distance_meters),
            _clean(row.origin),
            f"{row.origin_latitude:.6f}",
            f"{row.origin_longitude:.6f}",
            _clean(row.destination),
            f"{row.destination_latitude:.6f}",
            f"{row.destination_longitude:.6f}",
            row.segment.movement_type.value,
        ]
    return [start, end, minutes, duration]


def write_table_csv(table: ReportTable, out_path: str | Path, tz_name: str) -> Path:
    """Write the table as it currently is (filtered/sorted) to CSV."""

    headers = {"stays": STAY_HEADERS, "trips": TRIP_HEADERS, "data_gaps": GAP_HEADERS}[table.kind]
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.writer(f)
        w.writerow(headers)
        for row in table.rows:
            w.writerow(_csv_record(row, tz_name))
    logger.info("Wrote %s %s rows to %s", len(table), table.kind, p)
    return p


def export_filename(kind: str, date_range: DateRange | None, now: datetime, tz_name: str) -> str:
    """E.g. timeline_stays_2025-09-01_to_2025-09-30_1430.csv."""

    local_now = now.astimezone(tzinfo_from_name(tz_name))
    if date_range is not None:
        date_str = f"{date_range.start.isoformat()}_to_{date_range.end.isoformat()}"
    else:
        date_str = local_now.date().isoformat()
    return f"timeline_{kind}_{date_str}_{local_now.strftime('%H%M')}.csv"


def export_tables(
    tables: Sequence[ReportTable],
    tz_name: str,
    out_dir: str | Path,
    date_range: DateRange | None,
    now: datetime,
) -> list[Path]:
    """Write each table to its own timestamped file in ``out_dir``."""

    out = Path(out_dir)
    return [write_table_csv(t, out / export_filename(t.kind, date_range, now, tz_name), tz_name) for t in tables]


def format_row(row: StayRow | TripRow | GapRow, tz_name: str) -> dict[str, str]:
    """Display values for one table row (used by the CLI and the dashboard)."""

    seg = row.segment
    out = {
        "Start": format_local_datetime(seg.start_ms, tz_name),
        "End": format_local_datetime(seg.end_ms, tz_name),
        "Duration": format_duration_compact(seg.duration_seconds),
    }
    if isinstance(row, StayRow):
        out["Location"] = row.location_name
    elif isinstance(row, TripRow):
        out["Distance"] = format_distance(row.segment.distance_meters)
        out["From"] = row.origin
        out["To"] = row.destination
        out["Mode"] = row.segment.movement_type.value
    return out
