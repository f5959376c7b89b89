"""Geodesy helpers on a spherical Earth.

A tiny geometry layer so the store and the lock can do distance and
bounding-box work without pulling in GIS dependencies.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from src.geomeet.meetings.schemas import GeoPoint

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE = math.pi * EARTH_RADIUS_M / 180.0

# Lock cells stop at this latitude; everything closer to a pole shares one bucket.
POLAR_LATITUDE = 85.0
POLAR_CELL = "polar"


@dataclass(frozen=True)
class BoundingBox:
    """Latitude band plus one or two longitude ranges (two when wrapping)."""

    min_lat: float
    max_lat: float
    lon_ranges: tuple[tuple[float, float], ...]


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters between two points."""
    lat1 = math.radians(a.latitude)
    lon1 = math.radians(a.longitude)
    lat2 = math.radians(b.latitude)
    lon2 = math.radians(b.longitude)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def _lon_half_span(radius_m: float, widest_lat: float) -> float | None:
    """Largest longitude offset of the circle up to ``widest_lat``; None if unbounded."""
    ratio = math.sin(radius_m / EARTH_RADIUS_M) / math.cos(math.radians(widest_lat))
    if ratio >= 1.0:
        return None
    return math.degrees(math.asin(ratio))


def _lon_ranges(center_lon: float, half_span: float | None) -> tuple[tuple[float, float], ...]:
    if half_span is None or half_span >= 180.0:
        return ((-180.0, 180.0),)
    lo = center_lon - half_span
    hi = center_lon + half_span
    if lo < -180.0:
        return ((lo + 360.0, 180.0), (-180.0, hi))
    if hi > 180.0:
        return ((lo, 180.0), (-180.0, hi - 360.0))
    return ((lo, hi),)


def radius_bounding_box(center: GeoPoint, radius_m: float) -> BoundingBox:
    """Box guaranteed to contain every point within ``radius_m`` of ``center``.

    The box is wider than the circle; callers filter the candidates with
    :func:`haversine_m` afterwards.
    """
    dlat = radius_m / METERS_PER_DEGREE
    min_lat = max(-90.0, center.latitude - dlat)
    max_lat = min(90.0, center.latitude + dlat)

    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(min_lat, max_lat, ((-180.0, 180.0),))

    half_span = _lon_half_span(radius_m, max(abs(min_lat), abs(max_lat)))
    return BoundingBox(min_lat, max_lat, _lon_ranges(center.longitude, half_span))


def lock_cells(center: GeoPoint, radius_m: float, step_degrees: float) -> list[str]:
    """Sorted keys of the grid cells touched by the circle around ``center``.

    Cells come from a fixed lon/lat grid of ``step_degrees``. When two
    points are within ``radius_m`` of each other, the circle around one
    contains the other, so their key lists always intersect. The polar
    caps beyond POLAR_LATITUDE collapse into a single shared key.
    """
    dlat = radius_m / METERS_PER_DEGREE
    min_lat = center.latitude - dlat
    max_lat = center.latitude + dlat

    keys: list[str] = []
    if min_lat < -POLAR_LATITUDE or max_lat > POLAR_LATITUDE:
        keys.append(POLAR_CELL)

    band_lo = max(min_lat, -POLAR_LATITUDE)
    band_hi = min(max_lat, POLAR_LATITUDE)
    if band_lo > band_hi:
        return keys

    half_span = _lon_half_span(radius_m, max(abs(band_lo), abs(band_hi)))
    lon_indexes: set[int] = set()
    for lo, hi in _lon_ranges(center.longitude, half_span):
        lon_indexes.update(
            range(math.floor(lo / step_degrees), math.floor(hi / step_degrees) + 1)
        )

    lat_indexes = range(
        math.floor(band_lo / step_degrees), math.floor(band_hi / step_degrees) + 1
    )
    keys.extend(f"{lon_i}:{lat_i}" for lon_i in lon_indexes for lat_i in lat_indexes)
    return sorted(keys)
