"""Reverse geocoding of stay coordinates (lat/lon -> place, city, country).

Uses only the standard library. Public services such as Nominatim are
rate-limited: keep ``min_interval_seconds`` at 1s or more and set a
descriptive User-Agent.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.parse
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from path_timeline.locations import CoordinateResolver, ResolvedLocation, coord_key

logger = logging.getLogger(__name__)

_CITY_KEYS = ("city", "town", "village", "municipality", "hamlet")


@dataclass(frozen=True, slots=True)
class GeocodeResult:
    """A minimal reverse geocoding result."""

    display_name: str
    city: str
    country: str
    place_id: str
    raw: dict[str, Any]

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> GeocodeResult:
        address = raw.get("address") or {}
        city = next((str(address[k]) for k in _CITY_KEYS if address.get(k)), "")
        name = str(raw.get("name") or "") or str(raw.get("display_name", "") or "")
        return cls(
            display_name=name,
            city=city,
            country=str(address.get("country", "") or ""),
            place_id=str(raw.get("place_id", "") or ""),
            raw=raw,
        )


class JsonDiskCache:
    """JSON snapshot (key -> raw result) plus an append-only journal.

    Every ``set`` is journaled immediately, so results survive a crash before
    ``flush`` rewrites the snapshot.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._journal_path = self._path.with_name(f"{self._path.stem}.journal.jsonl")
        self._data: dict[str, dict[str, Any]] = {}
        self._loaded = False

    def load(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if self._path.exists():
            text = self._path.read_text(encoding="utf-8").strip()
            try:
                self._data = json.loads(text) if text else {}
            except json.JSONDecodeError:
                backup = self._path.with_suffix(self._path.suffix + ".broken")
                backup.write_text(text, encoding="utf-8")
                logger.warning("Geocode cache %s is corrupted; moved to %s", self._path, backup)
                self._data = {}
        if self._journal_path.exists():
            with self._journal_path.open("r", encoding="utf-8") as f:
                for line in f:
                    try:
                        rec = json.loads(line)
                    except json.JSONDecodeError:
                        continue  # torn tail line
                    if isinstance(rec.get("k"), str) and isinstance(rec.get("v"), dict):
                        self._data[rec["k"]] = rec["v"]

    def get(self, key: str) -> dict[str, Any] | None:
        self.load()
        return self._data.get(key)

    def set(self, key: str, value: dict[str, Any]) -> None:
        self.load()
        self._data[key] = value
        self._journal_path.parent.mkdir(parents=True, exist_ok=True)
        with self._journal_path.open("a", encoding="utf-8", newline="\n") as f:
            f.write(json.dumps({"k": key, "v": value}, ensure_ascii=False) + "\n")

    def __len__(self) -> int:
        self.load()
        return len(self._data)

    def flush(self) -> None:
        """Write the full snapshot and drop the journal."""

        self.load()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self._path)
        self._journal_path.unlink(missing_ok=True)


@dataclass(frozen=True, slots=True)
class NominatimConfig:
    """Configuration for the Nominatim reverse API."""

    base_url: str = "https://nominatim.openstreetmap.org/reverse"
    accept_language: str = "en"
    zoom: int = 18
    timeout_seconds: float = 20.0
    min_interval_seconds: float = 1.0
    user_agent: str = "path-timeline/0.2.0 (reverse-geocode; please set your own UA)"


def nominatim_reverse_raw(lat: float, lon: float, cfg: NominatimConfig) -> dict[str, Any] | None:
    """Call the Nominatim reverse API.

    Returns:
        Parsed JSON dict on success, None on network or decoding errors.
    """

    params = {
        "format": "jsonv2",
        "lat": f"{lat:.8f}",
        "lon": f"{lon:.8f}",
        "zoom": str(cfg.zoom),
        "addressdetails": "1",
        "accept-language": cfg.accept_language,
    }
    req = urllib.request.Request(
        f"{cfg.base_url}?{urllib.parse.urlencode(params)}",
        headers={"User-Agent": cfg.user_agent, "Accept": "application/json"},
        method="GET",
    )
    try:
        with urllib.request.urlopen(req, timeout=cfg.timeout_seconds) as resp:  # noqa: S310
            body = resp.read().decode("utf-8", errors="replace")
        raw = json.loads(body)
    except (OSError, ValueError) as exc:  # URLError, timeouts, bad JSON
        logger.warning("Reverse geocoding failed for %.5f,%.5f: %s", lat, lon, exc)
        return None
    if not isinstance(raw, dict) or "error" in raw:
        return None
    return raw


class NominatimReverseGeocoder:
    """Reverse geocoder using OpenStreetMap Nominatim, with optional disk cache."""

    def __init__(self, config: NominatimConfig | None = None, cache: JsonDiskCache | None = None, precision: int = 4) -> None:
        self._cfg = config or NominatimConfig()
        self._cache = cache
        self._precision = precision
        self._last_request_at = 0.0

    def reverse(self, lat: float, lon: float) -> GeocodeResult | None:
        key = coord_key(lat, lon, self._precision)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return GeocodeResult.from_raw(cached)

        self._sleep_if_needed()
        raw = nominatim_reverse_raw(lat, lon, self._cfg)
        if raw is None:
            return None
        if self._cache is not None:
            self._cache.set(key, raw)
        return GeocodeResult.from_raw(raw)

    def _sleep_if_needed(self) -> None:
        wait = self._cfg.min_interval_seconds - (time.monotonic() - self._last_request_at)
        if wait > 0:
            time.sleep(wait)
        self._last_request_at = time.monotonic()


class GeocodingResolver:
    """LocationResolver backed by a reverse geocoder; coordinates when it has no answer."""

    def __init__(self, geocoder: NominatimReverseGeocoder) -> None:
        self._geocoder = geocoder
        self._fallback = CoordinateResolver()

    def resolve(self, lat: float, lon: float) -> ResolvedLocation:
        result = self._geocoder.reverse(lat, lon)
        if result is None or not result.display_name:
            return self._fallback.resolve(lat, lon)
        return ResolvedLocation(
            display_name=result.display_name,
            city=result.city,
            country=result.country,
            geocoding_id=result.place_id or coord_key(lat, lon, 4),
        )
