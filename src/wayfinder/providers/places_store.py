"""
Structured places store client (PostgREST-style RPC).

The store ranks places server-side by a relevance function that mixes text match,
popularity and (optionally) distance to the user. We only marshal parameters and parse
rows into `PlaceRow`; malformed rows are skipped, transport errors are raised as
`RemoteSourceFailure`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from wayfinder.config.settings import Settings
from wayfinder.core.http import post_json
from wayfinder.domain.errors import RemoteSourceFailure
from wayfinder.domain.models import PlaceRow

logger = logging.getLogger(__name__)

SOURCE = "places_store"


class PlacesStoreClient:
    def __init__(self, settings: Settings):
        self._settings = settings

    def _endpoint(self) -> tuple[str, dict[str, str]]:
        cfg = self._settings.providers.places_store
        if not cfg.base_url:
            raise RemoteSourceFailure(SOURCE, "places store is not configured (PLACES_STORE_URL)")
        url = f"{cfg.base_url.rstrip('/')}/rest/v1/rpc/{cfg.search_function}"
        headers: dict[str, str] = {}
        if cfg.api_key:
            headers["apikey"] = cfg.api_key
            headers["Authorization"] = f"Bearer {cfg.api_key}"
        return url, headers

    async def query(
        self,
        text: str,
        *,
        city: str | None,
        country_code: str | None,
        user_lat: float | None = None,
        user_lng: float | None = None,
        max_results: int = 10,
        min_hierarchy_level: int = 1,
    ) -> list[PlaceRow]:
        """Run the ranked places search RPC and return parsed rows (server order)."""
        url, headers = self._endpoint()
        payload: dict[str, Any] = {
            "search_query": text,
            "search_city": city,
            "country_code": country_code,
            "user_latitude": user_lat,
            "user_longitude": user_lng,
            "max_results": int(max_results),
            "min_hierarchy_level": int(min_hierarchy_level),
        }
        try:
            data = await post_json(
                url,
                payload=payload,
                headers=headers,
                timeout_seconds=self._settings.app.http_timeout_seconds,
            )
        except (httpx.HTTPError, ValueError) as exc:
            raise RemoteSourceFailure(SOURCE, str(exc)) from exc

        if not isinstance(data, list):
            raise RemoteSourceFailure(SOURCE, "expected a list of rows")

        rows: list[PlaceRow] = []
        for raw in data:
            try:
                rows.append(PlaceRow.model_validate(raw))
            except ValidationError:
                logger.debug("Skipping malformed place row: %r", raw)
                continue
        return rows
