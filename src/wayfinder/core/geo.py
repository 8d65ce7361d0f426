from __future__ import annotations
from dataclasses import dataclass
from math import asin, cos, isfinite, radians, sin, sqrt

"""
Geospatial helpers.

A tiny geometry layer shared by the resolver (region matching) and the search
aggregator (proximity deduplication), plus the human-readable formatters used in
result subtitles.
"""

EARTH_RADIUS_M = 6_371_000


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """Return True when `lat`/`lon` are finite and inside the WGS84 ranges."""
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError):
        return False
    if not (isfinite(lat_f) and isfinite(lon_f)):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle distance in meters between two points."""
    lat1 = radians(a.lat)
    lon1 = radians(a.lon)
    lat2 = radians(b.lat)
    lon2 = radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push `h` a hair above 1.0 for antipodal points.
    return 2 * EARTH_RADIUS_M * asin(min(1.0, sqrt(h)))


def distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Symmetric great-circle distance; `distance_meters(p, p) == 0`."""
    if a == b:
        return 0.0
    return haversine_m(a, b)


def format_distance(meters: float) -> str:
    """Render a distance as whole meters below 1 km, else kilometers with one decimal."""
    m = round(max(0.0, float(meters)))
    if m < 1000:
        return f"{m}m"
    return f"{m / 1000:.1f}km"


def format_duration(seconds: float) -> str:
    """Render a duration as seconds, minutes, or whole hours.

    Hours are rounded and never carry leftover minutes ("1h", not "1h 20min").
    """
    s = round(max(0.0, float(seconds)))
    if s < 60:
        return f"{s}s"
    minutes = round(s / 60)
    if minutes < 60:
        return f"{minutes}min"
    return f"{round(s / 3600)}h"
