"""CSV input of raw points and output of segments."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from path_timeline.formatting import format_duration_compact
from path_timeline.models import SOURCE_CSV, RawPoint, Segment, Stay, Trip
from path_timeline.timeutils import dt_from_epoch_ms, epoch_ms_from_dt, parse_dt

logger = logging.getLogger(__name__)

SEGMENT_FIELDS = [
    "kind",
    "start_time",
    "end_time",
    "duration_seconds",
    "duration",
    "location_name",
    "latitude",
    "longitude",
    "distance_meters",
    "movement_type",
    "start_epoch_ms",
    "end_epoch_ms",
]


@dataclass(frozen=True, slots=True)
class CsvSummary:
    """Quick summary of CSV parsing."""

    rows_total: int
    rows_parsed: int
    rows_skipped: int
    fieldnames: Sequence[str]


def _optional_float(value: str | None) -> float | None:
    """Empty cells and the legacy -1 sentinel both mean "not reported"."""

    if value is None or not value.strip():
        return None
    v = float(value.strip())
    return None if v == -1.0 else v


def _parse_timestamp_ms(value: str) -> int:
    """Epoch milliseconds, or ISO-8601 text (a missing offset means UTC)."""

    s = value.strip()
    if s.lstrip("-").isdigit():
        return int(s)
    return epoch_ms_from_dt(parse_dt(s, "UTC"))


def _row_to_point(row: Mapping[str, str], device_id: str | None) -> RawPoint:
    if "timestamp" in row:
        ts = _parse_timestamp_ms(row["timestamp"])
        accuracy = _optional_float(row.get("accuracy"))
        velocity = _optional_float(row.get("velocity"))
    else:
        # Legacy footprint export: geoTime / horizontalAccuracy / speed
        ts = int(row["geoTime"].strip())
        accuracy = _optional_float(row.get("horizontalAccuracy"))
        velocity = _optional_float(row.get("speed"))
    return RawPoint(
        timestamp_ms=ts,
        latitude=float(row["latitude"].strip()),
        longitude=float(row["longitude"].strip()),
        accuracy=accuracy,
        altitude=_optional_float(row.get("altitude")),
        battery=_optional_float(row.get("battery")),
        velocity=velocity,
        device_id=device_id or (row.get("device_id") or "").strip(),
        source_type=(row.get("source_type") or "").strip() or SOURCE_CSV,
    )


def _check_columns(fieldnames: Sequence[str]) -> None:
    names = set(fieldnames)
    missing = [c for c in ("latitude", "longitude") if c not in names]
    if "timestamp" not in names and "geoTime" not in names:
        missing.append("timestamp")
    if missing:
        raise KeyError(f"CSV is missing required columns {missing}. Actual columns: {list(fieldnames)}")


def load_points(csv_path: str | Path, *, device_id: str | None = None) -> tuple[list[RawPoint], CsvSummary]:
    """Load all points into memory, skipping and counting malformed rows.

    Columns (native): timestamp (ISO-8601 or epoch ms), latitude, longitude,
    accuracy, altitude, battery, velocity (m/s), device_id, source_type.
    The legacy export with geoTime/horizontalAccuracy/speed is accepted too.

    Raises:
        KeyError: If a required column is absent.

    Returns:
        (points, summary)
    """

    p = Path(csv_path)
    rows_total = 0
    parsed: list[RawPoint] = []
    fieldnames: Sequence[str] = ()

    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or ()
        if fieldnames:
            _check_columns(fieldnames)
        for row in reader:
            rows_total += 1
            try:
                parsed.append(_row_to_point(row, device_id))
            except (ValueError, TypeError, AttributeError):
                continue

    summary = CsvSummary(
        rows_total=rows_total,
        rows_parsed=len(parsed),
        rows_skipped=rows_total - len(parsed),
        fieldnames=fieldnames,
    )
    if summary.rows_skipped > 0:
        logger.warning("Skipped %s malformed rows in %s", summary.rows_skipped, p)
    return parsed, summary


def write_segments_csv(segments: Sequence[Segment], out_path: str | Path, tz_name: str) -> None:
    """Write segments with local times for inspection or manual review."""

    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=SEGMENT_FIELDS)
        w.writeheader()
        for s in segments:
            row: dict[str, object] = {
                "kind": s.kind,
                "start_time": dt_from_epoch_ms(s.start_ms, tz_name).isoformat(sep=" "),
                "end_time": dt_from_epoch_ms(s.end_ms, tz_name).isoformat(sep=" "),
                "duration_seconds": f"{s.duration_seconds:.3f}",
                "duration": format_duration_compact(s.duration_seconds),
                "start_epoch_ms": s.start_ms,
                "end_epoch_ms": s.end_ms,
            }
            if isinstance(s, Stay):
                row.update(location_name=s.location_name, latitude=f"{s.latitude:.7f}", longitude=f"{s.longitude:.7f}")
            elif isinstance(s, Trip):
                row.update(distance_meters=f"{s.distance_meters:.1f}", movement_type=s.movement_type.value)
            w.writerow(row)
