"""Trip speed statistics and transport-mode classification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from path_timeline.config import TimelineConfig
from path_timeline.geo import haversine_m
from path_timeline.models import MovementType, RawPoint

MPS_TO_KMH = 3.6
# Pairwise speeds are smoothed over this many samples before taking the max.
SMOOTHING_WINDOW = 3


@dataclass(frozen=True, slots=True)
class TripStats:
    distance_m: float
    duration_s: float
    avg_speed_kmh: float
    max_speed_kmh: float


def trip_stats(points: Sequence[RawPoint]) -> TripStats:
    """Distance and speed figures for an ordered trip path.

    Max speed combines reported GPS velocities with pairwise speeds smoothed
    over a short window, so a single jittery fix does not dominate.
    """

    if len(points) < 2:
        return TripStats(0.0, 0.0, 0.0, 0.0)

    distance = 0.0
    pair_speeds: list[float] = []
    for prev, cur in zip(points, points[1:]):
        d = haversine_m(prev.latitude, prev.longitude, cur.latitude, cur.longitude)
        distance += d
        dt = (cur.timestamp_ms - prev.timestamp_ms) / 1000.0
        if dt > 0:
            pair_speeds.append(d / dt * MPS_TO_KMH)

    duration = (points[-1].timestamp_ms - points[0].timestamp_ms) / 1000.0
    avg = distance / duration * MPS_TO_KMH if duration > 0 else 0.0

    max_speed = 0.0
    if pair_speeds:
        window = min(SMOOTHING_WINDOW, len(pair_speeds))
        for i in range(len(pair_speeds) - window + 1):
            max_speed = max(max_speed, sum(pair_speeds[i : i + window]) / window)
    reported = [p.velocity * MPS_TO_KMH for p in points if p.velocity is not None and p.velocity >= 0]
    if reported:
        max_speed = max(max_speed, max(reported))
    # The smoothed maximum can never be below the average over the whole trip.
    max_speed = max(max_speed, avg)
    return TripStats(distance_m=distance, duration_s=duration, avg_speed_kmh=avg, max_speed_kmh=max_speed)


def classify(avg_kmh: float, max_kmh: float, distance_m: float, config: TimelineConfig) -> MovementType:
    """Pick a transport mode from speed figures.

    Optional modes (flight, train, bicycle) are tried first when enabled, then
    walking, then car; anything in between stays UNKNOWN.
    """

    if config.flight_enabled and (avg_kmh >= config.flight_min_avg_speed or max_kmh >= config.flight_min_max_speed):
        return MovementType.FLIGHT
    if (
        config.train_enabled
        and config.train_min_avg_speed <= avg_kmh <= config.train_max_avg_speed
        and config.train_min_max_speed <= max_kmh <= config.train_max_max_speed
    ):
        return MovementType.TRAIN
    if (
        config.bicycle_enabled
        and config.bicycle_min_avg_speed <= avg_kmh <= config.bicycle_max_avg_speed
        and max_kmh <= config.bicycle_max_max_speed
    ):
        return MovementType.BICYCLE

    if avg_kmh < config.walking_max_avg_speed and max_kmh < config.walking_max_max_speed:
        return MovementType.WALK
    # Short trips get some slack on the average: GPS noise inflates it.
    is_short = distance_m / 1000.0 <= config.short_distance_km
    if is_short and avg_kmh < config.walking_max_avg_speed + 1.0 and max_kmh < config.walking_max_max_speed:
        return MovementType.WALK
    if avg_kmh > config.car_min_avg_speed or max_kmh > config.car_min_max_speed:
        return MovementType.CAR
    return MovementType.UNKNOWN
