"""
Known service cities (centers + named zones).

Keep this table centralized so the resolver's stored-default tier, the region-estimate
reverse geocoder and the search fallback entry stay in sync.
"""

from __future__ import annotations

from dataclasses import dataclass

from wayfinder.core.geo import GeoPoint, distance_meters
from wayfinder.core.text import compact


@dataclass(frozen=True)
class Zone:
    name: str
    lat: float
    lon: float


@dataclass(frozen=True)
class City:
    name: str
    country_code: str
    address: str
    lat: float
    lon: float
    zones: tuple[Zone, ...]

    @property
    def center(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lon=self.lon)


# Order matters: the first entry is the deterministic stored default.
KNOWN_CITIES: list[City] = [
    City(
        name="Kinshasa",
        country_code="CD",
        address="Kinshasa Centre, République Démocratique du Congo",
        lat=-4.3217,
        lon=15.3069,
        zones=(
            Zone("Gombe", -4.3079, 15.3129),
            Zone("Kalamu", -4.3431, 15.2931),
            Zone("Limete", -4.3800, 15.2900),
        ),
    ),
    City(
        name="Lubumbashi",
        country_code="CD",
        address="Lubumbashi Centre, République Démocratique du Congo",
        lat=-11.6708,
        lon=27.4794,
        zones=(
            Zone("Centre-ville", -11.6708, 27.4794),
            Zone("Kenya", -11.6800, 27.4850),
        ),
    ),
    City(
        name="Kolwezi",
        country_code="CD",
        address="Kolwezi Centre, République Démocratique du Congo",
        lat=-10.7158,
        lon=25.4664,
        zones=(Zone("Centre", -10.7158, 25.4664),),
    ),
    City(
        name="Abidjan",
        country_code="CI",
        address="Abidjan Plateau, Côte d'Ivoire",
        lat=5.3600,
        lon=-4.0083,
        zones=(
            Zone("Plateau", 5.3247, -4.0147),
            Zone("Cocody", 5.3472, -3.9861),
        ),
    ),
]

_BY_KEY: dict[str, City] = {compact(c.name): c for c in KNOWN_CITIES}

_ALIASES: dict[str, str] = {
    "kin": "Kinshasa",
    "kinshasacentre": "Kinshasa",
    "lshi": "Lubumbashi",
    "lubum": "Lubumbashi",
    "kzi": "Kolwezi",
    "abj": "Abidjan",
    "babi": "Abidjan",
}


def find_city(name: str | None) -> City | None:
    """Map a city string ("kinshasa", "Kin", "Lubumbashi, RDC") to a known city."""
    if not name:
        return None
    key = compact(str(name).split(",")[0])
    if not key:
        return None
    if key in _BY_KEY:
        return _BY_KEY[key]
    alias = _ALIASES.get(key)
    if alias:
        return _BY_KEY[compact(alias)]
    return None


def default_city() -> City:
    return KNOWN_CITIES[0]


def nearest_city(lat: float, lon: float, *, max_distance_m: float) -> tuple[City, float] | None:
    """Closest known city center within `max_distance_m` (true great-circle distance)."""
    origin = GeoPoint(lat=float(lat), lon=float(lon))
    best: tuple[City, float] | None = None
    for city in KNOWN_CITIES:
        d = distance_meters(origin, city.center)
        if d <= max_distance_m and (best is None or d < best[1]):
            best = (city, d)
    return best


def nearest_zone(city: City, lat: float, lon: float) -> Zone:
    origin = GeoPoint(lat=float(lat), lon=float(lon))
    zones = city.zones or (Zone("Centre", city.lat, city.lon),)
    return min(zones, key=lambda z: distance_meters(origin, GeoPoint(lat=z.lat, lon=z.lon)))
