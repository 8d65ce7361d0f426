from __future__ import annotations

# Orchestrator for position resolution.
# It wires together:
# - the result cache (current-position slot + geocode map)
# - the ordered tier list (sensor -> network estimate -> stored default -> static)
# - forward geocoding of typed addresses (`locate_address`)
#
# Design goal:
# - Degrade instead of failing: with any fallback tier enabled, `resolve()` always
#   returns a Position. Errors reach the caller only when configuration leaves nothing.

import asyncio
import logging
import time
from typing import Any, Mapping

from wayfinder.catalog.cities import nearest_city
from wayfinder.config.overrides import apply_settings_overrides
from wayfinder.config.settings import Settings
from wayfinder.core.cache import ResultCache
from wayfinder.core.geo import is_valid_coordinate
from wayfinder.core.source_meta import record_source
from wayfinder.domain.errors import AddressNotFound, LocationError, RemoteSourceFailure, TierFailed, UnknownLocationError
from wayfinder.domain.models import AddressSource, Position, PositionSource
from wayfinder.providers.geocoder import GeocoderClient
from wayfinder.providers.ip_locator import IpLocator
from wayfinder.providers.sensor import SensorApi
from wayfinder.resolver.reverse import ReverseGeocoder
from wayfinder.resolver.tiers import (
    NetworkEstimateTier,
    ResolutionContext,
    SensorTier,
    StaticFallbackTier,
    StoredDefaultTier,
    Tier,
)

logger = logging.getLogger(__name__)


class PositionResolver:
    """Cache-first cascading position resolution."""

    def __init__(
        self,
        settings: Settings,
        cache: ResultCache,
        *,
        sensor: SensorApi,
        geocoder: GeocoderClient | None = None,
        ip_locator: IpLocator | None = None,
    ):
        self._settings = settings
        self._cache = cache
        self._geocoder = geocoder
        self.reverse = ReverseGeocoder(
            cache, geocoder, region_match_radius_m=settings.resolver.region_match_radius_m
        )
        self._sensor_tier = SensorTier(sensor, self.reverse)
        self._network_tier = NetworkEstimateTier(ip_locator or IpLocator(settings))
        self._stored_tier = StoredDefaultTier()
        self._static_tier = StaticFallbackTier()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def cache(self) -> ResultCache:
        return self._cache

    def tiers(self, settings: Settings | None = None) -> list[Tier]:
        """Enabled tiers in resolution order for the given (effective) settings."""
        cfg = (settings or self._settings).resolver
        tiers: list[Tier] = [self._sensor_tier]
        if cfg.fallback_to_network:
            tiers.append(self._network_tier)
        if cfg.fallback_to_stored_default:
            tiers.append(self._stored_tier)
        if cfg.fallback_to_static:
            tiers.append(self._static_tier)
        return tiers

    async def resolve(
        self,
        *,
        city: str | None = None,
        use_cache: bool = True,
        settings_overrides: Mapping[str, Any] | None = None,
        device_id: str | None = None,
        remember: bool = True,
    ) -> Position:
        """Return the current position, walking the tiers until one answers.

        `device_id` selects the cache slot (None is the local device). `use_cache=False`
        skips reading the slot and `remember=False` skips writing it.

        Raises:
            LocationError: only when the sensor failed and no enabled fallback tier answered.
            ValueError: if `settings_overrides` contains a disallowed key.
        """
        # Apply per-call overrides first so a bad payload fails before any I/O.
        settings = apply_settings_overrides(self._settings, settings_overrides)

        if use_cache:
            cached = self._cache.get_current_position(device_id)
            if cached is not None:
                logger.debug("Serving cached position (%s)", cached.source.value)
                record_source("position_cache", {"status": "cache", "source": cached.source.value})
                return cached

        ctx = ResolutionContext(settings=settings, city=city)
        sensor_error: LocationError | None = None

        for tier in self.tiers(settings):
            started = time.perf_counter()
            try:
                position = await tier.attempt(ctx)
            except TierFailed as exc:
                duration_ms = int((time.perf_counter() - started) * 1000)
                logger.warning("Position tier %s failed: %s", tier.name, exc.reason)
                record_source(tier.name, {"status": "error", "error": exc.reason, "duration_ms": duration_ms})
                if tier is self._sensor_tier:
                    sensor_error = exc.error
                continue

            duration_ms = int((time.perf_counter() - started) * 1000)
            record_source(tier.name, {"status": "ok", "duration_ms": duration_ms})
            logger.info("Resolved position via %s (%s)", tier.name, position.address_source.value)
            if remember and position.source.value in settings.resolver.cache_sources:
                self._cache.set_current_position(position, device_id)
            return position

        raise sensor_error or UnknownLocationError("no resolution tier produced a position")

    async def locate_address(self, text: str, region_hint: str | None = None) -> Position:
        """Forward-geocode a typed address into a `Position(source=geocoded)`.

        Raises:
            ValueError: if `text` is blank.
            AddressNotFound: if the geocoder is unavailable or has no usable match.
        """
        query = " ".join(str(text or "").split())
        if not query:
            raise ValueError("address text must not be empty")
        if self._geocoder is None:
            raise AddressNotFound("no geocoder configured")

        region = region_hint or self._settings.app.country_code
        timeout = float(self._settings.search.geocoder_timeout_seconds)
        try:
            hits = await asyncio.wait_for(self._geocoder.search(query, region), timeout=timeout)
        except (RemoteSourceFailure, asyncio.TimeoutError) as exc:
            logger.warning("Address lookup failed for %r: %s", query, exc)
            record_source("geocoder", {"status": "error", "error": str(exc) or "timeout"})
            raise AddressNotFound(f"could not geocode {query!r}") from exc

        for hit in hits:
            if not is_valid_coordinate(hit.lat, hit.lng):
                continue
            self._cache.set_geocode_result(hit.lat, hit.lng, hit.formatted_address)
            record_source("geocoder", {"status": "ok", "count": len(hits)})
            match = nearest_city(hit.lat, hit.lng, max_distance_m=self._settings.resolver.region_match_radius_m)
            return Position(
                address=hit.formatted_address,
                latitude=hit.lat,
                longitude=hit.lng,
                source=PositionSource.GEOCODED,
                address_source=AddressSource.GEOCODED,
                city=match[0].name if match else None,
            )

        record_source("geocoder", {"status": "empty", "count": 0})
        raise AddressNotFound(f"no match for {query!r}")
