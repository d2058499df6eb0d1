"""Place-name resolution for stays: favorites first, then reverse geocoding."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from path_timeline.geo import haversine_m, is_inside_polygon
from path_timeline.models import FavoriteLocation, GeometryType


@dataclass(frozen=True, slots=True)
class ResolvedLocation:
    display_name: str
    city: str = ""
    country: str = ""
    favorite_id: int | None = None
    geocoding_id: str | None = None


class LocationResolver(Protocol):
    def resolve(self, lat: float, lon: float) -> ResolvedLocation: ...


def coord_key(lat: float, lon: float, precision: int) -> str:
    """Build a stable cache key by rounding coordinates.

    Notes:
        Precision=4 is often a good default (lat ~ 11m resolution).
    """

    return f"{round(lat, precision):.{precision}f},{round(lon, precision):.{precision}f}"


class CoordinateResolver:
    """Last-resort resolver that labels a stay with its rounded coordinates."""

    def __init__(self, precision: int = 4) -> None:
        self._precision = precision

    def resolve(self, lat: float, lon: float) -> ResolvedLocation:
        return ResolvedLocation(display_name=coord_key(lat, lon, self._precision).replace(",", ", "))


def match_favorite(lat: float, lon: float, favorites: Sequence[FavoriteLocation]) -> FavoriteLocation | None:
    """Return the favorite containing the point.

    Areas win over points; among point favorites the closest center wins.
    """

    for fav in favorites:
        if fav.geometry == GeometryType.AREA and is_inside_polygon(lat, lon, fav.polygon):
            return fav
    best: FavoriteLocation | None = None
    best_d = float("inf")
    for fav in favorites:
        if fav.geometry != GeometryType.POINT:
            continue
        d = haversine_m(lat, lon, fav.latitude, fav.longitude)
        if d <= fav.radius_m and d < best_d:
            best, best_d = fav, d
    return best


class FavoriteResolver:
    """Resolve names from the user's favorites, delegating misses to ``fallback``."""

    def __init__(self, favorites: Sequence[FavoriteLocation], fallback: LocationResolver | None = None) -> None:
        self._favorites = tuple(favorites)
        self._fallback: LocationResolver = fallback or CoordinateResolver()

    def resolve(self, lat: float, lon: float) -> ResolvedLocation:
        fav = match_favorite(lat, lon, self._favorites)
        if fav is not None:
            return ResolvedLocation(
                display_name=fav.name,
                city=fav.city,
                country=fav.country,
                favorite_id=fav.favorite_id,
            )
        return self._fallback.resolve(lat, lon)


class CachingResolver:
    """Memoize another resolver by rounded coordinates."""

    def __init__(self, inner: LocationResolver, precision: int = 4) -> None:
        self._inner = inner
        self._precision = precision
        self._memo: dict[str, ResolvedLocation] = {}

    def resolve(self, lat: float, lon: float) -> ResolvedLocation:
        key = coord_key(lat, lon, self._precision)
        hit = self._memo.get(key)
        if hit is None:
            hit = self._inner.resolve(lat, lon)
            self._memo[key] = hit
        return hit


def favorite_from_mapping(item: Mapping[str, Any]) -> FavoriteLocation:
    """Build a favorite from a JSON object.

    Points need ``latitude``/``longitude`` (and optionally ``radius_m``);
    areas need ``polygon`` as a list of [lat, lon] pairs.

    Raises:
        ValueError: If required fields are missing or malformed.
    """

    try:
        geometry = GeometryType(str(item.get("geometry", "POINT")).upper())
        fav = FavoriteLocation(
            favorite_id=int(item["favorite_id"]),
            name=str(item["name"]),
            geometry=geometry,
            latitude=float(item.get("latitude", 0.0)),
            longitude=float(item.get("longitude", 0.0)),
            radius_m=float(item.get("radius_m", 75.0)),
            polygon=tuple((float(lat), float(lon)) for lat, lon in item.get("polygon", ())),
            city=str(item.get("city", "")),
            country=str(item.get("country", "")),
        )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Invalid favorite {item!r}: {exc}") from exc
    if geometry == GeometryType.AREA and len(fav.polygon) < 3:
        raise ValueError(f"Area favorite {fav.name!r} needs at least 3 vertices")
    if fav.radius_m <= 0:
        raise ValueError(f"Favorite {fav.name!r} radius must be > 0")
    return fav


def load_favorites(path: str | Path) -> list[FavoriteLocation]:
    """Read a JSON list of favorites."""

    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"Favorites file {path} must contain a JSON list")
    return [favorite_from_mapping(item) for item in data]
