from __future__ import annotations

import argparse
import csv
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Final

from zoneinfo import ZoneInfo


TZ: Final[str] = "Europe/Kyiv"
FIELDNAMES: Final[list[str]] = [
    "timestamp",
    "latitude",
    "longitude",
    "accuracy",
    "altitude",
    "battery",
    "velocity",
    "device_id",
    "source_type",
]
METERS_PER_DEG_LAT: Final[float] = 111_320.0


@dataclass(frozen=True, slots=True)
class Place:
    name: str
    lat: float
    lon: float


class _Writer:
    """Accumulates native-format rows while advancing a simulated clock."""

    def __init__(self, rng: random.Random, start: datetime, device_id: str) -> None:
        self.rng = rng
        self.cur = start
        self.battery = 100.0
        self.device_id = device_id
        self.rows: list[dict[str, str]] = []

    def emit(self, lat: float, lon: float, velocity_mps: float, accuracy: float) -> None:
        self.battery = max(5.0, self.battery - self.rng.uniform(0.0, 0.05))
        self.rows.append(
            {
                "timestamp": self.cur.isoformat(),
                "latitude": f"{lat:.7f}",
                "longitude": f"{lon:.7f}",
                "accuracy": f"{accuracy:.1f}",
                "altitude": f"{self.rng.uniform(150, 200):.1f}",
                "battery": f"{self.battery:.0f}",
                "velocity": f"{velocity_mps:.2f}",
                "device_id": self.device_id,
                "source_type": "csv",
            }
        )

    def stay(self, place: Place, minutes: float, step_s: float = 120.0) -> None:
        """Jitter around a place; a few points get poor accuracy."""

        end = self.cur + timedelta(minutes=minutes)
        while self.cur < end:
            lat = place.lat + self.rng.uniform(-0.00012, 0.00012)
            lon = place.lon + self.rng.uniform(-0.00012, 0.00012)
            acc = self.rng.choice([5.0, 8.0, 12.0, 20.0, 20.0, 90.0])
            self.emit(lat, lon, self.rng.uniform(0.0, 0.3), acc)
            self.cur += timedelta(seconds=step_s)

    def travel(self, a: Place, b: Place, speed_kmh: float, step_s: float = 30.0) -> None:
        """Straight line from a to b at roughly constant speed."""

        dlat_m = (b.lat - a.lat) * METERS_PER_DEG_LAT
        dlon_m = (b.lon - a.lon) * METERS_PER_DEG_LAT * math.cos(math.radians(a.lat))
        distance_m = math.hypot(dlat_m, dlon_m)
        speed_mps = speed_kmh / 3.6
        steps = max(2, int(distance_m / (speed_mps * step_s)))
        for i in range(1, steps + 1):
            f = i / steps
            v = speed_mps * self.rng.uniform(0.8, 1.2)
            self.emit(a.lat + (b.lat - a.lat) * f, a.lon + (b.lon - a.lon) * f, v, self.rng.choice([4.0, 6.0, 10.0]))
            self.cur += timedelta(seconds=step_s)

    def silence(self, hours: float) -> None:
        self.cur += timedelta(hours=hours)


def generate_points(*, days: int, seed: int, start_local: datetime, places: list[Place]) -> list[dict[str, str]]:
    """Generate privacy-safe points: nights at home, walks and drives, an occasional gap."""

    rng = random.Random(seed)
    tz = ZoneInfo(TZ)
    home, work, *others = places
    w = _Writer(rng, start_local.replace(tzinfo=tz), device_id="sample-phone")

    for day in range(days):
        w.stay(home, rng.uniform(60, 120))
        w.travel(home, work, speed_kmh=rng.uniform(30, 50))
        w.stay(work, rng.uniform(6 * 60, 9 * 60))
        if others and rng.random() < 0.6:
            spot = rng.choice(others)
            w.travel(work, spot, speed_kmh=rng.uniform(4, 5.5), step_s=60.0)
            w.stay(spot, rng.uniform(20, 90))
            w.travel(spot, home, speed_kmh=rng.uniform(30, 50))
        else:
            w.travel(work, home, speed_kmh=rng.uniform(30, 50))
        if rng.random() < 0.15:
            # Phone switched off overnight
            w.silence(rng.uniform(4, 8))
        # Overnight stay crossing local midnight
        target = (start_local + timedelta(days=day + 1)).replace(hour=7, minute=30, tzinfo=tz)
        remaining = (target - w.cur).total_seconds() / 60.0
        if remaining > 0:
            w.stay(home, remaining, step_s=600.0)

    return w.rows


def main() -> int:
    p = argparse.ArgumentParser(description="Generate a fake points CSV for demo/testing (privacy-safe).")
    p.add_argument("--out", type=str, default="sample_data/points.csv", help="Output CSV path")
    p.add_argument("--days", type=int, default=14, help="Number of simulated days")
    p.add_argument("--seed", type=int, default=42, help="Random seed (reproducible)")
    p.add_argument(
        "--start",
        type=str,
        default="2025-09-15 07:00:00",
        help="Start local time in Europe/Kyiv, e.g. '2025-09-15 07:00:00'",
    )
    args = p.parse_args()

    start_local = datetime.fromisoformat(args.start)
    places = [
        Place("home", 50.4501000, 30.5234000),
        Place("office", 50.4422000, 30.5367000),
        Place("park", 50.4465000, 30.5297000),
        Place("cafe", 50.4478000, 30.5189000),
    ]

    rows = generate_points(days=args.days, seed=args.seed, start_local=start_local, places=places)
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=FIELDNAMES)
        w.writeheader()
        w.writerows(rows)

    print(f"Generated: {out_path} (rows={len(rows)}, days={args.days}, seed={args.seed})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
