"""Streaming segmentation of raw GPS points into stays, trips and data gaps."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Sequence

from path_timeline.config import TimelineConfig
from path_timeline.geo import centroid, haversine_m
from path_timeline.locations import LocationResolver
from path_timeline.models import Coordinate, DataGap, RawPoint, Segment, Stay, Trip
from path_timeline.travel import MPS_TO_KMH, classify, trip_stats

logger = logging.getLogger(__name__)

# Minimum number of clustered points for arrival detection inside a trip.
ARRIVAL_MIN_POINTS = 3


class _Mode(Enum):
    UNKNOWN = "unknown"
    POTENTIAL_STAY = "potential_stay"
    CONFIRMED_STAY = "confirmed_stay"
    IN_TRIP = "in_trip"


@dataclass(frozen=True, slots=True)
class _Unplaced:
    """A rejected stay; its interval is handed to a neighbouring segment."""

    start_ms: int
    end_ms: int
    fallback: Stay


def prepare_points(points: Iterable[RawPoint]) -> list[RawPoint]:
    """Merge device streams into one time-ordered list.

    Points with out-of-range coordinates are dropped, and so is every point
    sharing a timestamp with an earlier one.
    """

    valid: list[RawPoint] = []
    invalid = 0
    for p in points:
        if -90.0 <= p.latitude <= 90.0 and -180.0 <= p.longitude <= 180.0:
            valid.append(p)
        else:
            invalid += 1
    if invalid:
        logger.warning("Dropped %s points with invalid coordinates", invalid)

    valid.sort(key=lambda p: p.timestamp_ms)
    out: list[RawPoint] = []
    for p in valid:
        if out and out[-1].timestamp_ms == p.timestamp_ms:
            continue
        out.append(p)
    return out


class StreamingTimelineProcessor:
    """Single-pass state machine over ordered points.

    Modes: UNKNOWN -> POTENTIAL_STAY -> CONFIRMED_STAY -> IN_TRIP, with data
    gaps resetting to POTENTIAL_STAY at the next point.
    """

    def __init__(self, config: TimelineConfig, user_id: str = "") -> None:
        self._cfg = config
        self._user_id = user_id
        self._mode = _Mode.UNKNOWN
        self._active: list[RawPoint] = []
        # Trip points held back while a possible arrival is being confirmed.
        self._pending_trip: list[RawPoint] | None = None
        self._last: RawPoint | None = None
        self._out: list[Segment | _Unplaced] = []
        self.rejected_stays = 0

    def process(self, point: RawPoint) -> None:
        last = self._last
        self._last = point
        if last is None:
            self._start_potential_stay([point])
            return
        if self._handle_gap(last, point):
            return
        if self._mode in (_Mode.POTENTIAL_STAY, _Mode.CONFIRMED_STAY):
            self._process_stay_point(point)
        else:
            self._process_trip_point(point)

    def finish(self) -> list[Segment]:
        """Close the active segment and return the tiled segment list."""

        self._finish_active()
        self._mode = _Mode.UNKNOWN
        return self._normalize(self._out)

    # -- stays ---------------------------------------------------------------

    def _start_potential_stay(self, points: list[RawPoint]) -> None:
        self._active = points
        self._mode = _Mode.POTENTIAL_STAY
        self._maybe_confirm_stay()

    def _process_stay_point(self, point: RawPoint) -> None:
        if not self._is_accurate(point) or self._within_stay_radius(point):
            self._active.append(point)
            self._maybe_confirm_stay()
            return

        if self._mode == _Mode.CONFIRMED_STAY:
            self._emit_stay(self._active)
            self._active = [self._active[-1], point]
        elif self._pending_trip is not None:
            # The arrival did not hold: the stop becomes part of the trip again.
            self._active = self._pending_trip + self._active[1:] + [point]
            self._pending_trip = None
        else:
            self._active.append(point)
        self._mode = _Mode.IN_TRIP

    def _maybe_confirm_stay(self) -> None:
        if self._mode != _Mode.POTENTIAL_STAY:
            return
        if _span_s(self._active) < self._cfg.min_stay_seconds:
            return
        self._mode = _Mode.CONFIRMED_STAY
        if self._pending_trip is not None:
            self._emit_trip(self._pending_trip)
            self._pending_trip = None

    def _within_stay_radius(self, point: RawPoint) -> bool:
        center = self._stay_center(self._active)
        return haversine_m(point.latitude, point.longitude, center[0], center[1]) <= self._cfg.staypoint_radius_meters

    def _stay_center(self, points: Sequence[RawPoint]) -> tuple[float, float]:
        accurate = [(p.latitude, p.longitude) for p in points if self._is_accurate(p)]
        center = centroid(accurate or [(p.latitude, p.longitude) for p in points])
        return center if center is not None else (points[0].latitude, points[0].longitude)

    def _is_accurate(self, point: RawPoint) -> bool:
        if not self._cfg.use_velocity_accuracy or point.accuracy is None or point.accuracy < 0:
            return True
        return point.accuracy <= self._cfg.staypoint_max_accuracy_threshold

    # -- trips ---------------------------------------------------------------

    def _process_trip_point(self, point: RawPoint) -> None:
        self._active.append(point)
        idx = self._stop_index(self._active)
        if idx is None:
            return
        self._pending_trip = self._active[: idx + 1]
        self._start_potential_stay(self._active[idx:])

    def _stop_index(self, points: Sequence[RawPoint]) -> int | None:
        """Index where the trip's trailing stop begins, or None while still moving."""

        last = len(points) - 1
        candidates: list[int] = []

        # Sustained stop: trailing run of slow samples.
        j = last
        while j >= 1 and self._speed_kmh(points[j - 1], points[j]) <= self._cfg.staypoint_velocity_threshold:
            j -= 1
        if j < last and _span_s(points[j:]) >= self._cfg.trip_sustained_stop_min_duration_seconds:
            candidates.append(j)

        # Arrival: trailing points clustered around the latest fix.
        anchor = points[last]
        k = last
        while (
            k >= 1
            and haversine_m(points[k - 1].latitude, points[k - 1].longitude, anchor.latitude, anchor.longitude)
            <= self._cfg.staypoint_radius_meters
        ):
            k -= 1
        window = points[k:]
        if (
            len(window) >= ARRIVAL_MIN_POINTS
            and _span_s(window) >= self._cfg.trip_arrival_detection_min_duration_seconds
        ):
            candidates.append(k)

        candidates = [c for c in candidates if c >= 1]
        return min(candidates) if candidates else None

    @staticmethod
    def _speed_kmh(prev: RawPoint, cur: RawPoint) -> float:
        if cur.velocity is not None and cur.velocity >= 0:
            return cur.velocity * MPS_TO_KMH
        dt = (cur.timestamp_ms - prev.timestamp_ms) / 1000.0
        if dt <= 0:
            return 0.0
        return haversine_m(prev.latitude, prev.longitude, cur.latitude, cur.longitude) / dt * MPS_TO_KMH

    # -- gaps ----------------------------------------------------------------

    def _handle_gap(self, last: RawPoint, point: RawPoint) -> bool:
        delta_s = (point.timestamp_ms - last.timestamp_ms) / 1000.0
        if delta_s <= self._cfg.data_gap_threshold_seconds or delta_s < self._cfg.data_gap_min_duration_seconds:
            return False

        cfg = self._cfg
        if (
            cfg.gap_stay_inference_enabled
            and self._mode in (_Mode.POTENTIAL_STAY, _Mode.CONFIRMED_STAY)
            and delta_s <= cfg.gap_stay_inference_max_gap_hours * 3600.0
            and self._within_stay_radius(point)
        ):
            self._active.append(point)
            self._maybe_confirm_stay()
            return True

        self._finish_active()
        distance = haversine_m(last.latitude, last.longitude, point.latitude, point.longitude)
        if (
            cfg.gap_trip_inference_enabled
            and cfg.gap_trip_inference_min_gap_hours * 3600.0 <= delta_s <= cfg.gap_trip_inference_max_gap_hours * 3600.0
            and distance >= cfg.gap_trip_inference_min_distance_meters
        ):
            self._emit_trip([last, point])
        else:
            self._out.append(DataGap(start_ms=last.timestamp_ms, end_ms=point.timestamp_ms, user_id=self._user_id))
        self._start_potential_stay([point])
        return True

    # -- emission ------------------------------------------------------------

    def _finish_active(self) -> None:
        if not self._active:
            return
        if self._mode == _Mode.IN_TRIP:
            self._emit_trip(self._active)
        elif self._pending_trip is not None:
            # Unconfirmed arrival at the end of a stream or before a gap.
            self._emit_trip(self._pending_trip + self._active[1:])
        elif self._mode in (_Mode.POTENTIAL_STAY, _Mode.CONFIRMED_STAY):
            self._emit_stay(self._active)
        self._active = []
        self._pending_trip = None

    def _emit_stay(self, points: Sequence[RawPoint]) -> None:
        lat, lon = self._stay_center(points)
        stay = Stay(
            start_ms=points[0].timestamp_ms,
            end_ms=points[-1].timestamp_ms,
            latitude=lat,
            longitude=lon,
            user_id=self._user_id,
        )
        if self._cfg.use_velocity_accuracy:
            accurate = sum(1 for p in points if self._is_accurate(p))
            if accurate / len(points) < self._cfg.staypoint_min_accuracy_ratio:
                logger.debug(
                    "Rejected stay %s-%s: %s/%s accurate points", stay.start_ms, stay.end_ms, accurate, len(points)
                )
                self.rejected_stays += 1
                self._out.append(_Unplaced(stay.start_ms, stay.end_ms, stay))
                return
        self._out.append(stay)

    def _emit_trip(self, points: Sequence[RawPoint]) -> None:
        self._out.append(_make_trip(points, self._cfg, self._user_id))

    # -- tiling --------------------------------------------------------------

    def _normalize(self, items: list[Segment | _Unplaced]) -> list[Segment]:
        """Make the output contiguous: absorb rejected stays, close holes, join adjacent trips."""

        result: list[Segment] = []
        carry_start: int | None = None
        last_unplaced: _Unplaced | None = None
        for item in items:
            if isinstance(item, _Unplaced):
                if result:
                    result[-1] = replace(result[-1], end_ms=max(result[-1].end_ms, item.end_ms))
                else:
                    carry_start = item.start_ms if carry_start is None else carry_start
                    last_unplaced = item
                continue

            seg: Segment = item
            if carry_start is not None:
                seg = replace(seg, start_ms=min(carry_start, seg.start_ms))
                carry_start = None
            if result:
                prev = result[-1]
                if seg.start_ms > prev.end_ms:
                    result[-1] = prev = replace(prev, end_ms=seg.start_ms)
                elif seg.start_ms < prev.end_ms:
                    seg = replace(seg, start_ms=prev.end_ms, end_ms=max(seg.end_ms, prev.end_ms))
                if isinstance(prev, Trip) and isinstance(seg, Trip):
                    result[-1] = _join_trips(prev, seg, self._cfg)
                    continue
            result.append(seg)

        if not result and last_unplaced is not None:
            fallback = last_unplaced.fallback
            result.append(replace(fallback, start_ms=carry_start or fallback.start_ms))
        return result


def _span_s(points: Sequence[RawPoint]) -> float:
    if len(points) < 2:
        return 0.0
    return (points[-1].timestamp_ms - points[0].timestamp_ms) / 1000.0


def _make_trip(points: Sequence[RawPoint], config: TimelineConfig, user_id: str) -> Trip:
    stats = trip_stats(points)
    first, last = points[0], points[-1]
    return Trip(
        start_ms=first.timestamp_ms,
        end_ms=last.timestamp_ms,
        start_point=Coordinate(first.latitude, first.longitude),
        end_point=Coordinate(last.latitude, last.longitude),
        distance_meters=stats.distance_m,
        movement_type=classify(stats.avg_speed_kmh, stats.max_speed_kmh, stats.distance_m, config),
        user_id=user_id,
        avg_speed_kmh=stats.avg_speed_kmh,
        max_speed_kmh=stats.max_speed_kmh,
    )


def _join_trips(a: Trip, b: Trip, config: TimelineConfig) -> Trip:
    distance = a.distance_meters + b.distance_meters
    duration_s = (b.end_ms - a.start_ms) / 1000.0
    avg = distance / duration_s * MPS_TO_KMH if duration_s > 0 else 0.0
    max_speed = max(a.max_speed_kmh, b.max_speed_kmh, avg)
    return replace(
        a,
        end_ms=b.end_ms,
        end_point=b.end_point,
        distance_meters=distance,
        avg_speed_kmh=avg,
        max_speed_kmh=max_speed,
        movement_type=classify(avg, max_speed, distance, config),
    )


def enrich_stays(segments: Sequence[Segment], resolver: LocationResolver) -> list[Segment]:
    """Attach location names (favorite, geocoding or coordinate label) to stays."""

    out: list[Segment] = []
    for seg in segments:
        if isinstance(seg, Stay):
            loc = resolver.resolve(seg.latitude, seg.longitude)
            seg = replace(
                seg,
                location_name=loc.display_name,
                favorite_id=loc.favorite_id,
                geocoding_id=loc.geocoding_id,
                city=loc.city,
                country=loc.country,
            )
        out.append(seg)
    return out


def _same_location(a: Stay, b: Stay, config: TimelineConfig) -> bool:
    if a.favorite_id is not None or b.favorite_id is not None:
        return a.favorite_id == b.favorite_id
    if a.geocoding_id is not None and b.geocoding_id is not None:
        return a.geocoding_id == b.geocoding_id or (bool(a.location_name) and a.location_name == b.location_name)
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude) <= config.merge_max_distance_meters


def merge_stays(segments: Sequence[Segment], config: TimelineConfig) -> list[Segment]:
    """Merge consecutive stays at the same place.

    Stays touching each other are always merged. Stays separated by a trip are
    merged when that trip is short in distance or in time. A data gap between
    two stays always keeps them apart.
    """

    max_gap_s = config.merge_max_time_gap_minutes * 60.0
    out: list[Segment] = []
    merged = 0
    for seg in segments:
        if isinstance(seg, Stay) and out:
            prev = out[-1]
            if isinstance(prev, Stay) and _same_location(prev, seg, config):
                out[-1] = replace(prev, end_ms=seg.end_ms)
                merged += 1
                continue
            if (
                isinstance(prev, Trip)
                and len(out) >= 2
                and isinstance(out[-2], Stay)
                and _same_location(out[-2], seg, config)
                and (prev.distance_meters < config.merge_max_distance_meters or prev.duration_seconds <= max_gap_s)
            ):
                out.pop()
                out[-1] = replace(out[-1], end_ms=seg.end_ms)
                merged += 1
                continue
        out.append(seg)
    if merged:
        logger.debug("Merged %s stays at repeated locations", merged)
    return out


def segment(
    points: Iterable[RawPoint],
    config: TimelineConfig | None = None,
    *,
    user_id: str = "",
    resolver: LocationResolver | None = None,
) -> list[Segment]:
    """Convert raw points into an ordered, contiguous list of segments.

    Args:
        points: Raw points, from any number of devices, in any order.
        config: Thresholds; defaults to TimelineConfig().
        user_id: Owner recorded on every segment.
        resolver: Optional place-name capability used for stays.

    Returns:
        Segments tiling [first point, last point]. Empty input gives an empty
        list; a single point gives one zero-duration Stay.
    """

    cfg = (config or TimelineConfig()).validate()
    pts = prepare_points(points)
    if not pts:
        return []

    processor = StreamingTimelineProcessor(cfg, user_id=user_id)
    for p in pts:
        processor.process(p)
    segments = processor.finish()

    if resolver is not None:
        segments = enrich_stays(segments, resolver)
    if cfg.merge_enabled:
        segments = merge_stays(segments, cfg)

    counts = Counter(s.kind for s in segments)
    logger.info(
        "Segmented %s points into %s stays, %s trips, %s gaps (%s stays rejected for accuracy)",
        len(pts),
        counts["stay"],
        counts["trip"],
        counts["gap"],
        processor.rejected_stays,
    )
    return segments
