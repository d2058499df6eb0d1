"""Segmentation thresholds and their loading/validation."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from path_timeline.errors import InvalidConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TimelineConfig:
    """Parameters controlling timeline generation.

    Speeds are km/h, distances meters. Defaults match the values the timeline
    has been tuned against; every field can be overridden per user.
    """

    # Stay detection
    staypoint_radius_meters: float = 50.0
    staypoint_min_duration_minutes: float = 7.0
    # Points at or below this speed count as "stopped" when detecting arrivals.
    staypoint_velocity_threshold: float = 2.0
    staypoint_max_accuracy_threshold: float = 60.0
    staypoint_min_accuracy_ratio: float = 0.5
    use_velocity_accuracy: bool = True

    # Arrival detection inside a trip
    trip_arrival_detection_min_duration_seconds: float = 90.0
    trip_sustained_stop_min_duration_seconds: float = 60.0

    # Merging of consecutive stays at the same place
    merge_enabled: bool = True
    merge_max_distance_meters: float = 150.0
    merge_max_time_gap_minutes: float = 10.0

    # Data gaps
    data_gap_threshold_seconds: float = 3 * 60 * 60.0
    data_gap_min_duration_seconds: float = 30 * 60.0
    gap_stay_inference_enabled: bool = False
    gap_stay_inference_max_gap_hours: float = 24.0
    gap_trip_inference_enabled: bool = False
    gap_trip_inference_min_gap_hours: float = 1.0
    gap_trip_inference_max_gap_hours: float = 24.0
    gap_trip_inference_min_distance_meters: float = 100_000.0

    # Travel classification
    walking_max_avg_speed: float = 6.0
    walking_max_max_speed: float = 8.0
    car_min_avg_speed: float = 10.0
    car_min_max_speed: float = 15.0
    short_distance_km: float = 1.0
    bicycle_enabled: bool = False
    bicycle_min_avg_speed: float = 8.0
    bicycle_max_avg_speed: float = 25.0
    bicycle_max_max_speed: float = 35.0
    train_enabled: bool = False
    train_min_avg_speed: float = 30.0
    train_max_avg_speed: float = 150.0
    train_min_max_speed: float = 80.0
    train_max_max_speed: float = 180.0
    flight_enabled: bool = False
    flight_min_avg_speed: float = 400.0
    flight_min_max_speed: float = 500.0

    def validate(self) -> TimelineConfig:
        """Check value ranges.

        Returns:
            self, to allow chaining.

        Raises:
            InvalidConfigError: If a threshold is out of range.
        """

        positive = (
            "staypoint_radius_meters",
            "staypoint_velocity_threshold",
            "staypoint_max_accuracy_threshold",
            "data_gap_threshold_seconds",
            "merge_max_distance_meters",
            "walking_max_avg_speed",
            "walking_max_max_speed",
            "car_min_avg_speed",
            "car_min_max_speed",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise InvalidConfigError(f"{name} must be > 0, got {getattr(self, name)!r}")
        non_negative = (
            "staypoint_min_duration_minutes",
            "trip_arrival_detection_min_duration_seconds",
            "trip_sustained_stop_min_duration_seconds",
            "merge_max_time_gap_minutes",
            "data_gap_min_duration_seconds",
            "gap_stay_inference_max_gap_hours",
            "gap_trip_inference_min_distance_meters",
            "short_distance_km",
        )
        for name in non_negative:
            if getattr(self, name) < 0:
                raise InvalidConfigError(f"{name} must be >= 0, got {getattr(self, name)!r}")
        if not 0.0 <= self.staypoint_min_accuracy_ratio <= 1.0:
            raise InvalidConfigError("staypoint_min_accuracy_ratio must be within [0, 1]")
        if self.gap_trip_inference_min_gap_hours > self.gap_trip_inference_max_gap_hours:
            raise InvalidConfigError("gap_trip_inference_min_gap_hours exceeds gap_trip_inference_max_gap_hours")
        return self

    @property
    def min_stay_seconds(self) -> float:
        return self.staypoint_min_duration_minutes * 60.0

    def with_overrides(self, **overrides: Any) -> TimelineConfig:
        """Return a validated copy with some fields replaced (None values are ignored)."""

        changes = {k: v for k, v in overrides.items() if v is not None}
        return TimelineConfig.from_mapping(changes, base=self)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base: TimelineConfig | None = None) -> TimelineConfig:
        """Build a config from a mapping of overrides.

        Raises:
            InvalidConfigError: On unknown keys or wrong value types.
        """

        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise InvalidConfigError(f"Unknown config keys: {', '.join(unknown)}")

        changes: dict[str, Any] = {}
        for key, value in data.items():
            default = getattr(base or cls(), key)
            if isinstance(default, bool):
                if not isinstance(value, bool):
                    raise InvalidConfigError(f"{key} must be true/false, got {value!r}")
                changes[key] = value
            else:
                try:
                    changes[key] = float(value)
                except (TypeError, ValueError) as exc:
                    raise InvalidConfigError(f"{key} must be a number, got {value!r}") from exc
        return replace(base or cls(), **changes).validate()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_config(path: str | Path | None) -> TimelineConfig:
    """Load overrides from a JSON file on top of the defaults.

    Args:
        path: JSON object file, or None for defaults.

    Raises:
        InvalidConfigError: If the file is not a JSON object or has bad values.
    """

    if path is None:
        return TimelineConfig().validate()
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidConfigError(f"Config file {p} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidConfigError(f"Config file {p} must contain a JSON object")
    logger.info("Loaded %s timeline config overrides from %s", len(data), p)
    return TimelineConfig.from_mapping(data)
