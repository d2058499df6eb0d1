"""Global test configuration and fixtures."""

from __future__ import annotations

import math
from datetime import UTC, datetime

import pytest

from path_timeline.config import TimelineConfig
from path_timeline.models import RawPoint, UserProfile
from path_timeline.store import SegmentStore
from path_timeline.timeutils import epoch_ms_from_dt

# Meters per degree of latitude on the haversine sphere.
METERS_PER_DEG_LAT = math.pi * 6_371_000.0 / 180.0

HOME = (50.4501, 30.5234)
START_MS = epoch_ms_from_dt(datetime(2025, 9, 15, 6, 0, tzinfo=UTC))


class Track:
    """Builds a synthetic point stream by moving a cursor in time and space.

    Stays emit one stationary sample every ``step_s`` seconds; moves walk a
    straight line north at a fixed speed, one sample per step.
    """

    def __init__(self, start_ms: int = START_MS, lat: float = HOME[0], lon: float = HOME[1]) -> None:
        self.t = start_ms
        self.lat = lat
        self.lon = lon
        self.points: list[RawPoint] = []

    def _emit(self, velocity: float, accuracy: float | None) -> None:
        self.points.append(RawPoint(self.t, self.lat, self.lon, accuracy=accuracy, velocity=velocity))

    def stay(self, minutes: float, step_s: float = 60.0, accuracy: float | None = 10.0) -> Track:
        if not self.points or self.points[-1].timestamp_ms != self.t:
            self._emit(0.0, accuracy)
        for _ in range(int(minutes * 60 // step_s)):
            self.t += int(step_s * 1000)
            self._emit(0.0, accuracy)
        return self

    def move(self, meters: float, speed_kmh: float, step_s: float = 30.0) -> Track:
        step_m = speed_kmh / 3.6 * step_s
        for _ in range(round(meters / step_m)):
            self.t += int(step_s * 1000)
            self.lat += step_m / METERS_PER_DEG_LAT
            self._emit(speed_kmh / 3.6, 10.0)
        return self

    def jump(self, meters_north: float) -> Track:
        """Relocate the cursor without emitting (teleport between samples)."""

        self.lat += meters_north / METERS_PER_DEG_LAT
        return self

    def silence(self, hours: float) -> Track:
        self.t += int(hours * 3_600_000)
        return self


@pytest.fixture()
def track():
    """Fresh track starting at HOME on 2025-09-15 06:00 UTC."""
    return Track()


@pytest.fixture()
def make_track():
    """Factory for tracks with a custom start time or place."""
    return Track


@pytest.fixture()
def config():
    """Default thresholds."""
    return TimelineConfig()


@pytest.fixture()
def store():
    """Store with one user in Europe/Kyiv."""
    s = SegmentStore(TimelineConfig())
    s.set_profile(UserProfile(user_id="u1", timezone="Europe/Kyiv"))
    return s


@pytest.fixture()
def write_csv(tmp_path):
    """Write CSV text to a temp file and return its path."""

    def _write(text: str, name: str = "points.csv"):
        p = tmp_path / name
        p.write_text(text, encoding="utf-8")
        return p

    return _write
