"""
External geocoding client (Google Geocoding API compatible).

This module is responsible only for:
- reverse geocoding a coordinate into a formatted address,
- forward geocoding free text (biased by a region hint) into `GeocodeHit`s.

Caching, timeouts and fallbacks live in the callers (`resolver.reverse`,
`search.aggregator`); every failure here is raised as `RemoteSourceFailure`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from wayfinder.config.settings import Settings
from wayfinder.core.http import get_json
from wayfinder.domain.errors import RemoteSourceFailure
from wayfinder.domain.models import GeocodeHit

logger = logging.getLogger(__name__)

SOURCE = "geocoder"


class GeocoderClient:
    """Thin async wrapper around a Google-compatible `/geocode/json` endpoint."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def _require_key(self) -> str:
        key = self._settings.providers.geocoder.api_key
        if not key:
            raise RemoteSourceFailure(SOURCE, "geocoder API key is not configured (GEOCODER_API_KEY)")
        return key

    async def _call(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        cfg = self._settings.providers.geocoder
        query = {**params, "key": self._require_key(), "language": cfg.language}
        try:
            payload = await get_json(
                cfg.base_url,
                params=query,
                timeout_seconds=self._settings.app.http_timeout_seconds,
            )
        except (httpx.HTTPError, ValueError) as exc:
            raise RemoteSourceFailure(SOURCE, str(exc)) from exc

        if not isinstance(payload, dict):
            raise RemoteSourceFailure(SOURCE, "unexpected payload shape")
        status = str(payload.get("status") or "")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            raise RemoteSourceFailure(SOURCE, f"status={status or 'missing'}")
        results = payload.get("results")
        return [r for r in results if isinstance(r, dict)] if isinstance(results, list) else []

    @staticmethod
    def _parse_hit(raw: dict[str, Any]) -> GeocodeHit | None:
        try:
            location = raw["geometry"]["location"]
            return GeocodeHit(
                formatted_address=str(raw["formatted_address"]),
                lat=float(location["lat"]),
                lng=float(location["lng"]),
                place_id=raw.get("place_id"),
                types=[str(t) for t in raw.get("types") or []],
            )
        except (KeyError, TypeError, ValueError):
            return None

    async def reverse_geocode(self, lat: float, lng: float) -> str:
        """Return the first formatted address for a coordinate."""
        results = await self._call({"latlng": f"{lat},{lng}"})
        for raw in results:
            address = raw.get("formatted_address")
            if isinstance(address, str) and address.strip():
                return address.strip()
        raise RemoteSourceFailure(SOURCE, "no address for coordinate")

    async def search(self, text: str, region_hint: str | None = None) -> list[GeocodeHit]:
        """Forward-geocode `text`; `region_hint` is a ccTLD-style country code."""
        params: dict[str, Any] = {"address": text}
        if region_hint:
            params["region"] = region_hint.lower()
        logger.info("Geocoding text query %r (region=%s)", text, region_hint)
        hits = [self._parse_hit(r) for r in await self._call(params)]
        return [h for h in hits if h is not None]
