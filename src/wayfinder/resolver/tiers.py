"""
Position resolution tiers.

Each tier is a small strategy object exposing `async attempt(ctx) -> Position` and
raising `TierFailed` when it cannot answer. The resolver walks an ordered list of tiers,
so adding, reordering or disabling one is a configuration change.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from math import isfinite
from typing import Protocol

from wayfinder.catalog.cities import KNOWN_CITIES, find_city
from wayfinder.config.settings import Settings
from wayfinder.core.geo import is_valid_coordinate
from wayfinder.core.source_meta import record_source
from wayfinder.domain.errors import (
    InvalidCoordinates,
    LocationError,
    LocationTimeout,
    RemoteSourceFailure,
    SensorError,
    TierFailed,
    location_error_for,
)
from wayfinder.domain.models import (
    AddressSource,
    Position,
    PositionSource,
    SensorOptions,
    SensorReading,
)
from wayfinder.providers.ip_locator import IpLocator
from wayfinder.providers.sensor import SensorApi
from wayfinder.resolver.reverse import ReverseGeocoder, estimate_region

logger = logging.getLogger(__name__)

# Codes that will not change by asking again.
NON_RETRYABLE_SENSOR_CODES = frozenset({"permission_denied", "unsupported"})


@dataclass
class ResolutionContext:
    """Inputs for one resolution pass (effective settings already include overrides)."""

    settings: Settings
    city: str | None = None


class Tier(Protocol):
    name: str

    async def attempt(self, ctx: ResolutionContext) -> Position: ...


def effective_sensor_options(settings: Settings) -> SensorOptions:
    """Clamp the configured timeout to its ceiling and raise `maximum_age` to its floor."""
    cfg = settings.resolver.sensor
    return SensorOptions(
        enable_high_accuracy=cfg.enable_high_accuracy,
        timeout_seconds=min(float(cfg.timeout_seconds), float(cfg.max_timeout_seconds)),
        maximum_age_seconds=max(float(cfg.maximum_age_seconds), float(cfg.min_maximum_age_seconds)),
    )


def validate_reading(reading: SensorReading) -> SensorReading:
    if not is_valid_coordinate(reading.latitude, reading.longitude):
        raise InvalidCoordinates(reading.latitude, reading.longitude)
    return reading


class SensorTier:
    name = "sensor"

    def __init__(self, sensor: SensorApi, reverse: ReverseGeocoder):
        self._sensor = sensor
        self._reverse = reverse

    async def _read_once(self, options: SensorOptions) -> SensorReading:
        try:
            reading = await asyncio.wait_for(
                self._sensor.get_current_position(options), timeout=options.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise LocationTimeout(f"sensor did not answer within {options.timeout_seconds:g}s") from exc
        except SensorError as exc:
            raise location_error_for(exc.code, str(exc)) from exc
        except Exception as exc:
            raise location_error_for("unknown", f"sensor failed: {exc!r}") from exc
        return validate_reading(reading)

    async def _acquire(self, settings: Settings) -> SensorReading:
        options = effective_sensor_options(settings)
        max_attempts = int(settings.resolver.sensor.max_attempts)
        backoff = float(settings.resolver.sensor.backoff_base_seconds)
        last_error: LocationError | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                return await self._read_once(options)
            except InvalidCoordinates as exc:
                logger.warning("Sensor attempt %d/%d returned %s", attempt, max_attempts, exc)
                last_error = location_error_for("position_unavailable", str(exc))
            except LocationError as exc:
                if exc.code in NON_RETRYABLE_SENSOR_CODES:
                    raise TierFailed(self.name, exc.code, error=exc) from exc
                logger.warning("Sensor attempt %d/%d failed: %s (%s)", attempt, max_attempts, exc.code, exc)
                last_error = exc

            if attempt < max_attempts:
                # 1s, 2s, 4s, ...
                await asyncio.sleep(backoff * (2 ** (attempt - 1)))

        error = last_error or location_error_for("unknown")
        raise TierFailed(self.name, f"retries exhausted ({error.code})", error=error)

    async def attempt(self, ctx: ResolutionContext) -> Position:
        reading = await self._acquire(ctx.settings)
        lat, lng = float(reading.latitude), float(reading.longitude)

        timeout = float(ctx.settings.resolver.reverse_geocode_timeout_seconds)
        try:
            resolved = await asyncio.wait_for(self._reverse.resolve(lat, lng), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Reverse geocode timed out after %gs; using region estimate", timeout)
            record_source("reverse_geocode", {"status": "timeout"})
            resolved = estimate_region(lat, lng, max_distance_m=ctx.settings.resolver.region_match_radius_m)

        accuracy = reading.accuracy
        if accuracy is not None and not (isfinite(accuracy) and accuracy >= 0):
            accuracy = None
        return Position(
            address=resolved.address,
            latitude=lat,
            longitude=lng,
            source=PositionSource.SENSOR,
            address_source=resolved.address_source,
            accuracy_meters=accuracy,
            city=resolved.city,
        )


class NetworkEstimateTier:
    name = "network_estimate"

    def __init__(self, locator: IpLocator):
        self._locator = locator

    async def attempt(self, ctx: ResolutionContext) -> Position:
        try:
            return await self._locator.estimate()
        except RemoteSourceFailure as exc:
            raise TierFailed(self.name, str(exc)) from exc


class StoredDefaultTier:
    """Known city centers; the requested city when known, else the first entry."""

    name = "stored_default"

    async def attempt(self, ctx: ResolutionContext) -> Position:
        city = find_city(ctx.city) if ctx.city else None
        if city is None:
            if not KNOWN_CITIES:
                raise TierFailed(self.name, "no known cities")
            city = KNOWN_CITIES[0]
        return Position(
            address=city.address,
            latitude=city.lat,
            longitude=city.lon,
            source=PositionSource.STORED_DEFAULT,
            address_source=AddressSource.CATALOG,
            city=city.name,
        )


class StaticFallbackTier:
    name = "static_fallback"

    async def attempt(self, ctx: ResolutionContext) -> Position:
        cfg = ctx.settings.resolver.static_fallback
        return Position(
            address=cfg.address,
            latitude=cfg.lat,
            longitude=cfg.lon,
            source=PositionSource.STATIC_FALLBACK,
            address_source=AddressSource.CATALOG,
            accuracy_meters=cfg.accuracy_m,
            city=cfg.city,
        )
