"""
Coarse network (IP-based) position estimate.

Several public IP geolocation services are queried concurrently, each under its own
timeout. The first valid answer in configured service order wins; city-level accuracy
only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from wayfinder.config.settings import Settings
from wayfinder.core.geo import is_valid_coordinate
from wayfinder.core.http import get_json
from wayfinder.domain.errors import RemoteSourceFailure
from wayfinder.domain.models import AddressSource, Position, PositionSource

logger = logging.getLogger(__name__)

SOURCE = "ip_locator"


def _parse_ipapi(data: Any) -> tuple[float, float, str] | None:
    if not isinstance(data, dict) or data.get("latitude") is None or data.get("longitude") is None:
        return None
    label = ", ".join(str(p) for p in (data.get("city"), data.get("country_name")) if p)
    return float(data["latitude"]), float(data["longitude"]), label


def _parse_ipinfo(data: Any) -> tuple[float, float, str] | None:
    if not isinstance(data, dict) or not isinstance(data.get("loc"), str):
        return None
    lat_s, _, lon_s = data["loc"].partition(",")
    label = ", ".join(str(p) for p in (data.get("city"), data.get("region"), data.get("country")) if p)
    return float(lat_s), float(lon_s), label


_PARSERS = {"ipapi": _parse_ipapi, "ipinfo": _parse_ipinfo}


class IpLocator:
    def __init__(self, settings: Settings):
        self._settings = settings

    def _url(self, service: str) -> str:
        ip = self._settings.providers.ip
        return ip.ipapi_url if service == "ipapi" else ip.ipinfo_url

    async def _lookup(self, service: str) -> tuple[float, float, str] | None:
        timeout = float(self._settings.resolver.network.service_timeout_seconds)
        try:
            data = await asyncio.wait_for(
                get_json(self._url(service), timeout_seconds=timeout), timeout=timeout
            )
            parsed = _PARSERS[service](data)
        except (httpx.HTTPError, ValueError, TypeError, KeyError, asyncio.TimeoutError) as exc:
            logger.warning("IP service %s failed: %s", service, exc)
            return None
        if parsed is None or not is_valid_coordinate(parsed[0], parsed[1]):
            logger.warning("IP service %s returned no usable location", service)
            return None
        return parsed

    async def estimate(self) -> Position:
        """Return a city-level `Position`, or raise `RemoteSourceFailure`."""
        services = list(self._settings.resolver.network.services)
        if not services:
            raise RemoteSourceFailure(SOURCE, "no IP services configured")
        results = await asyncio.gather(*(self._lookup(s) for s in services))
        for service, parsed in zip(services, results):
            if parsed is None:
                continue
            lat, lon, label = parsed
            return Position(
                address=label or f"{lat:.4f}, {lon:.4f}",
                latitude=lat,
                longitude=lon,
                source=PositionSource.NETWORK_ESTIMATE,
                address_source=AddressSource.REGION_ESTIMATE if label else AddressSource.COORDINATES,
                accuracy_meters=float(self._settings.resolver.network.accuracy_m),
            )
        raise RemoteSourceFailure(SOURCE, "all IP services failed")
