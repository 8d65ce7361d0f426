"""
Domain models (Pydantic).

These types are the stable "contract" between layers:
- resolver output (`Position`)
- search inputs/outputs (`SearchContext`, `SearchResult`)
- collaborator payloads (`SensorOptions`, `SensorReading`, `PlaceRow`, `GeocodeHit`)

Coordinates are range-checked by Pydantic, so an out-of-range point can never be
constructed as a `Position` or `SearchResult`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PositionSource(str, Enum):
    SENSOR = "sensor"
    NETWORK_ESTIMATE = "network_estimate"
    STORED_DEFAULT = "stored_default"
    STATIC_FALLBACK = "static_fallback"
    GEOCODED = "geocoded"


class AddressSource(str, Enum):
    """Where a position's human-readable address came from."""

    GEOCODED = "geocoded"
    CACHED = "cached"
    REGION_ESTIMATE = "region_estimate"
    COORDINATES = "coordinates"
    CATALOG = "catalog"

    @property
    def verified(self) -> bool:
        return self in (AddressSource.GEOCODED, AddressSource.CACHED, AddressSource.CATALOG)


class SourceType(str, Enum):
    CURATED = "curated"
    STRUCTURED_STORE = "structured_store"
    GEOCODED_EXTERNAL = "geocoded_external"

    @property
    def priority(self) -> int:
        """Lower is better: curated > structured store > external geocoder."""
        return _SOURCE_PRIORITY[self]


_SOURCE_PRIORITY = {
    SourceType.CURATED: 0,
    SourceType.STRUCTURED_STORE: 1,
    SourceType.GEOCODED_EXTERNAL: 2,
}


class Position(BaseModel):
    """A resolved device/user position."""

    address: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    source: PositionSource
    address_source: AddressSource = AddressSource.COORDINATES
    accuracy_meters: float | None = Field(default=None, ge=0)
    captured_at: datetime = Field(default_factory=utc_now)
    city: str | None = None


class SearchResult(BaseModel):
    """One ranked address-search hit."""

    id: str
    title: str
    subtitle: str | None = None
    address: str | None = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    source_type: SourceType
    relevance_score: float = 0.0
    hierarchy_level: int = Field(5, ge=1, le=5)
    badge: str | None = None
    distance_meters: float | None = None
    is_fallback: bool = False


class SearchContext(BaseModel):
    """Caller context for a search: locality hints, proximity bias, and result cap."""

    city: str | None = None
    country_code: str | None = None
    user_lat: float | None = Field(default=None, ge=-90, le=90)
    user_lng: float | None = Field(default=None, ge=-180, le=180)
    max_results: int = Field(10, ge=1, le=50)
    stream: str | None = None
    device_id: str | None = None

    @field_validator("city", "country_code", "stream", "device_id")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class SensorOptions(BaseModel):
    """Options passed to the device location API (seconds, not milliseconds)."""

    enable_high_accuracy: bool = True
    timeout_seconds: float = Field(15, gt=0)
    maximum_age_seconds: float = Field(60, ge=0)


class SensorReading(BaseModel):
    """Raw fix from the device location API; not range-checked on purpose."""

    latitude: float
    longitude: float
    accuracy: float | None = None


class PlaceRow(BaseModel):
    """One row returned by the structured places store RPC."""

    id: str
    name: str
    commune: str | None = None
    city: str | None = None
    latitude: float
    longitude: float
    hierarchy_level: int = Field(5, ge=1, le=5)
    popularity_score: float | None = None
    relevance_score: float | None = None
    distance_meters: float | None = None
    badge: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: object) -> str:
        return str(value)


class GeocodeHit(BaseModel):
    """One forward-geocoding result from the external provider."""

    formatted_address: str
    lat: float
    lng: float
    place_id: str | None = None
    types: list[str] = Field(default_factory=list)
