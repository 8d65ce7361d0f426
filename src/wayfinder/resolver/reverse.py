"""
Reverse geocoding with a deterministic offline fallback.

Order of attempts:
1) result cache (rounded-coordinate grid cell),
2) external geocoder (write-through to the cache on success),
3) region estimate: nearest known city center within ~55 km -> "<zone>, <city>",
4) raw coordinates text.

Steps 3-4 exist purely so an address field never renders empty; the returned
`address_source` keeps them distinguishable from a verified address.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from wayfinder.catalog.cities import nearest_city, nearest_zone
from wayfinder.core.cache import ResultCache
from wayfinder.core.source_meta import record_source
from wayfinder.domain.errors import RemoteSourceFailure
from wayfinder.domain.models import AddressSource
from wayfinder.providers.geocoder import GeocoderClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAddress:
    address: str
    address_source: AddressSource
    city: str | None = None


def coordinates_text(lat: float, lng: float) -> str:
    return f"{lat:.4f}, {lng:.4f}"


def estimate_region(lat: float, lng: float, *, max_distance_m: float) -> ResolvedAddress:
    """Offline pseudo-address from the known-cities table."""
    match = nearest_city(lat, lng, max_distance_m=max_distance_m)
    if match is None:
        return ResolvedAddress(coordinates_text(lat, lng), AddressSource.COORDINATES)
    city, _ = match
    zone = nearest_zone(city, lat, lng)
    return ResolvedAddress(f"{zone.name}, {city.name}", AddressSource.REGION_ESTIMATE, city=city.name)


class ReverseGeocoder:
    def __init__(
        self,
        cache: ResultCache,
        geocoder: GeocoderClient | None,
        *,
        region_match_radius_m: float = 55_000,
    ):
        self._cache = cache
        self._geocoder = geocoder
        self._region_match_radius_m = float(region_match_radius_m)

    async def resolve(self, lat: float, lng: float) -> ResolvedAddress:
        cached = self._cache.get_geocode_result(lat, lng)
        if cached:
            logger.debug("Reverse geocode cache hit for %.4f,%.4f", lat, lng)
            record_source("reverse_geocode", {"status": "cache"})
            return ResolvedAddress(cached, AddressSource.CACHED)

        if self._geocoder is not None:
            try:
                address = await self._geocoder.reverse_geocode(lat, lng)
            except RemoteSourceFailure as exc:
                logger.warning("Reverse geocode failed; using region estimate: %s", exc)
                record_source("reverse_geocode", {"status": "error", "error": str(exc)})
            else:
                self._cache.set_geocode_result(lat, lng, address)
                record_source("reverse_geocode", {"status": "ok"})
                return ResolvedAddress(address, AddressSource.GEOCODED)

        return estimate_region(lat, lng, max_distance_m=self._region_match_radius_m)
