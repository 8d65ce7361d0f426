"""
API routes.

Endpoints:
- GET/POST `/api/position`: resolve the current position (client may report its own fix).
- GET `/api/geocode`: forward-geocode a typed address.
- GET/POST `/api/search`: ranked address search.
- GET `/api/popular`, `/api/nearby`: curated listings.
- GET `/api/cities`: known service cities.
- GET `/api/settings`: public settings (secrets redacted).
- DELETE `/api/cache`: user-initiated cache reset.

The current-position slot is scoped by `device_id`. Requests without one neither read nor
write it, and search only uses a cached position as proximity hint for that same device.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from wayfinder.catalog.cities import KNOWN_CITIES
from wayfinder.config.settings import get_settings
from wayfinder.core.cache import record_cache_stats
from wayfinder.core.source_meta import capture_source_meta
from wayfinder.domain.errors import AddressNotFound, LocationError, SensorError
from wayfinder.domain.models import SearchContext, SensorReading
from wayfinder.providers.sensor import FixedSensor, SensorApi, UnavailableSensor
from wayfinder.service import WayfinderService, build_service

router = APIRouter()


@lru_cache
def _service() -> WayfinderService:
    return build_service(get_settings())


class PositionRequest(BaseModel):
    """A position request; `reading` / `sensor_error` carry what the device reported."""

    reading: SensorReading | None = None
    sensor_error: str | None = None
    device_id: str | None = None
    city: str | None = None
    fresh: bool = False
    settings_overrides: dict[str, Any] | None = None


class SearchRequest(BaseModel):
    query: str
    context: SearchContext = Field(default_factory=SearchContext)
    settings_overrides: dict[str, Any] | None = None


def _error(status: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status, detail={"code": code, "message": message})


def _sensor_for(reading: SensorReading | None, sensor_error: str | None) -> SensorApi:
    if sensor_error:
        return FixedSensor([SensorError(sensor_error)])
    if reading is not None:
        return FixedSensor([reading])
    return UnavailableSensor()


async def _resolve_position(req: PositionRequest) -> dict:
    service = _service()
    resolver = service.resolver(_sensor_for(req.reading, req.sensor_error))
    # Clients without a device id never read or write a position slot.
    known_device = bool(req.device_id)
    try:
        with record_cache_stats() as stats, capture_source_meta() as meta:
            position = await resolver.resolve(
                city=req.city,
                use_cache=known_device and not req.fresh,
                settings_overrides=req.settings_overrides,
                device_id=req.device_id,
                remember=known_device,
            )
    except LocationError as e:
        raise _error(503, e.code.upper(), str(e)) from e
    except ValueError as e:
        raise _error(400, "VALIDATION_ERROR", str(e)) from e
    return {
        "position": position.model_dump(mode="json"),
        "verified": position.address_source.verified,
        "meta": {"cache": stats.as_dict(), "sources": meta.sources},
    }


@router.get("/api/position")
async def get_position(
    lat: float | None = None,
    lng: float | None = None,
    accuracy: float | None = None,
    sensor_error: str | None = None,
    device_id: str | None = None,
    city: str | None = None,
    fresh: bool = False,
) -> dict:
    """Resolve the current position; `lat`/`lng` are the device fix, if the client has one."""
    if (lat is None) != (lng is None):
        raise _error(400, "VALIDATION_ERROR", "lat and lng must be provided together")
    reading = SensorReading(latitude=lat, longitude=lng, accuracy=accuracy) if lat is not None else None
    return await _resolve_position(
        PositionRequest(reading=reading, sensor_error=sensor_error, device_id=device_id, city=city, fresh=fresh)
    )


@router.post("/api/position")
async def post_position(req: PositionRequest) -> dict:
    """Resolve the current position with optional per-request settings overrides."""
    return await _resolve_position(req)


@router.get("/api/geocode")
async def get_geocode(address: str = Query(..., min_length=1), region: str | None = None) -> dict:
    """Forward-geocode a typed address into a position."""
    service = _service()
    try:
        with record_cache_stats() as stats, capture_source_meta() as meta:
            position = await service.resolver().locate_address(address, region)
    except AddressNotFound as e:
        raise _error(404, "NOT_FOUND", str(e)) from e
    except ValueError as e:
        raise _error(400, "VALIDATION_ERROR", str(e)) from e
    return {
        "position": position.model_dump(mode="json"),
        "meta": {"cache": stats.as_dict(), "sources": meta.sources},
    }


async def _search(req: SearchRequest) -> dict:
    service = _service()
    try:
        with record_cache_stats() as stats, capture_source_meta() as meta:
            results = await service.search.search(
                req.query,
                req.context,
                settings_overrides=req.settings_overrides,
                use_cached_position=req.context.device_id is not None,
            )
    except ValueError as e:
        raise _error(400, "VALIDATION_ERROR", str(e)) from e
    return {
        "query": req.query,
        "results": [r.model_dump(mode="json") for r in results],
        "meta": {"cache": stats.as_dict(), "sources": meta.sources},
    }


@router.get("/api/search")
async def get_search(
    q: str = "",
    city: str | None = None,
    country: str | None = None,
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
    max_results: int = Query(default=10, ge=1, le=50),
    stream: str | None = None,
    device_id: str | None = None,
) -> dict:
    """Ranked address search (short queries return popular places)."""
    context = SearchContext(
        city=city,
        country_code=country,
        user_lat=lat,
        user_lng=lng,
        max_results=max_results,
        stream=stream,
        device_id=device_id,
    )
    return await _search(SearchRequest(query=q, context=context))


@router.post("/api/search")
async def post_search(req: SearchRequest) -> dict:
    """Ranked address search with optional per-request settings overrides."""
    return await _search(req)


@router.get("/api/popular")
def get_popular(city: str | None = None, max_results: int = Query(default=10, ge=1, le=50)) -> dict:
    results = _service().search.popular_places(city, max_results)
    return {"city": city, "results": [r.model_dump(mode="json") for r in results]}


@router.get("/api/nearby")
def get_nearby(
    lat: float,
    lng: float,
    radius_km: float | None = Query(default=None, gt=0),
    max_results: int = Query(default=10, ge=1, le=50),
) -> dict:
    try:
        results = _service().search.nearby_places(lat, lng, radius_km, max_results)
    except ValueError as e:
        raise _error(400, "VALIDATION_ERROR", str(e)) from e
    return {"results": [r.model_dump(mode="json") for r in results]}


@router.get("/api/cities")
def get_cities() -> dict:
    """Return the known service cities (centers + zones)."""
    return {
        "cities": [
            {
                "name": c.name,
                "country_code": c.country_code,
                "address": c.address,
                "lat": c.lat,
                "lon": c.lon,
                "zones": [z.name for z in c.zones],
            }
            for c in KNOWN_CITIES
        ]
    }


@router.get("/api/settings")
def get_public_settings() -> dict:
    """Return safe-to-expose settings (provider credentials removed)."""
    data = get_settings().model_dump(mode="json")
    providers = data.get("providers", {})
    providers.get("geocoder", {}).pop("api_key", None)
    providers.get("places_store", {}).pop("api_key", None)
    return {"app": data.get("app", {}), "search": data.get("search", {}), "resolver": data.get("resolver", {})}


@router.delete("/api/cache")
def delete_cache() -> dict:
    """Wipe the position slot, geocode results and memoized searches."""
    _service().clear_caches()
    return {"cleared": True}
