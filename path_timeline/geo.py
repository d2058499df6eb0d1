"""Geospatial utilities (no external dependencies)."""

from __future__ import annotations

import math
from typing import Iterable, Sequence


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute Haversine distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters.
    """

    r = 6_371_000.0  # mean Earth radius in meters
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return r * c


def is_inside_polygon(lat: float, lon: float, polygon: Sequence[tuple[float, float]]) -> bool:
    """Ray-casting point-in-polygon test on (lat, lon) vertices.

    Good enough for favorite areas (a few hundred meters); not valid across the antimeridian.
    """

    n = len(polygon)
    if n < 3:
        return False
    inside = False
    j = n - 1
    for i in range(n):
        lat_i, lon_i = polygon[i]
        lat_j, lon_j = polygon[j]
        if (lat_i > lat) != (lat_j > lat):
            cross_lon = lon_i + (lat - lat_i) * (lon_j - lon_i) / (lat_j - lat_i)
            if lon < cross_lon:
                inside = not inside
        j = i
    return inside


def centroid(coords: Iterable[tuple[float, float]]) -> tuple[float, float] | None:
    """Arithmetic mean of (lat, lon) pairs, None for an empty input."""

    n = 0
    sum_lat = 0.0
    sum_lon = 0.0
    for lat, lon in coords:
        sum_lat += lat
        sum_lon += lon
        n += 1
    if n == 0:
        return None
    return sum_lat / n, sum_lon / n
