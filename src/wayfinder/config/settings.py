# src/wayfinder/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/wayfinder/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `PLACES_STORE_URL`, `GEOCODER_API_KEY`)
- an external YAML file via `WAYFINDER_CONFIG_PATH`

Design rule:
- Tuning knobs (timeouts, TTLs, score bonuses) live in YAML, not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal
from wayfinder.core.env import load_dotenv_if_present

import yaml
from pydantic import BaseModel, Field


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `wayfinder.config`."""
    text = resources.files("wayfinder.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "Wayfinder"
    http_timeout_seconds: float = 10
    log_level: str = "INFO"
    home_city: str = "Kinshasa"
    country_code: str = "CD"


class CacheSettings(BaseModel):
    enabled: bool = True
    storage: Literal["file", "memory"] = "file"
    dir: str = ".cache/wayfinder"
    position_ttl_seconds: int = Field(5 * 60, gt=0)
    geocode_ttl_seconds: int = Field(30 * 60, gt=0)
    max_geocode_entries: int = Field(100, ge=1)
    coordinate_precision: int = Field(4, ge=0, le=8)


class SensorSettings(BaseModel):
    enable_high_accuracy: bool = True
    timeout_seconds: float = Field(15, gt=0)
    max_timeout_seconds: float = Field(15, gt=0)
    maximum_age_seconds: float = Field(300, ge=0)
    min_maximum_age_seconds: float = Field(60, ge=0)
    max_attempts: int = Field(3, ge=1)
    backoff_base_seconds: float = Field(1.0, ge=0)


class StaticFallbackSettings(BaseModel):
    address: str = "Kinshasa Centre, République Démocratique du Congo"
    lat: float = Field(-4.3217, ge=-90, le=90)
    lon: float = Field(15.3069, ge=-180, le=180)
    city: str = "Kinshasa"
    accuracy_m: float = 50_000


class NetworkEstimateSettings(BaseModel):
    services: list[Literal["ipapi", "ipinfo"]] = Field(default_factory=lambda: ["ipapi", "ipinfo"])
    service_timeout_seconds: float = Field(3, gt=0)
    accuracy_m: float = 50_000


class ResolverSettings(BaseModel):
    sensor: SensorSettings = Field(default_factory=SensorSettings)
    reverse_geocode_timeout_seconds: float = Field(5, gt=0)
    region_match_radius_m: float = Field(55_000, gt=0)
    fallback_to_network: bool = True
    fallback_to_stored_default: bool = True
    fallback_to_static: bool = True
    network: NetworkEstimateSettings = Field(default_factory=NetworkEstimateSettings)
    static_fallback: StaticFallbackSettings = Field(default_factory=StaticFallbackSettings)
    cache_sources: list[Literal["sensor", "network_estimate"]] = Field(
        default_factory=lambda: ["sensor", "network_estimate"]
    )


class MatchBonusSettings(BaseModel):
    exact: float = 100
    prefix: float = 75
    substring: float = 50
    subtitle: float = 25


class SourceBonusSettings(BaseModel):
    curated: float = 30
    structured_store: float = 20
    geocoded_external: float = 10


class ScoringSettings(BaseModel):
    match: MatchBonusSettings = Field(default_factory=MatchBonusSettings)
    source: SourceBonusSettings = Field(default_factory=SourceBonusSettings)


class SearchSettings(BaseModel):
    min_query_length: int = Field(2, ge=1)
    max_results_default: int = Field(10, ge=1, le=50)
    dedup_radius_m: float = Field(500, ge=0)
    debounce_ms: int = Field(300, ge=0)
    memo_ttl_seconds: int = Field(300, ge=0)
    store_timeout_seconds: float = Field(8, gt=0)
    geocoder_timeout_seconds: float = Field(5, gt=0)
    geocoder_max_results: int = Field(5, ge=1)
    min_hierarchy_level: int = Field(1, ge=1, le=5)
    nearby_radius_km: float = Field(5, gt=0)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)


class GeocoderSettings(BaseModel):
    base_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    api_key: str | None = None
    language: str = "fr"


class PlacesStoreSettings(BaseModel):
    base_url: str | None = None
    api_key: str | None = None
    search_function: str = "intelligent_places_search"


class IpServiceSettings(BaseModel):
    ipapi_url: str = "https://ipapi.co/json/"
    ipinfo_url: str = "https://ipinfo.io/json"


class ProvidersSettings(BaseModel):
    geocoder: GeocoderSettings = Field(default_factory=GeocoderSettings)
    places_store: PlacesStoreSettings = Field(default_factory=PlacesStoreSettings)
    ip: IpServiceSettings = Field(default_factory=IpServiceSettings)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    providers: ProvidersSettings = Field(default_factory=ProvidersSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)
    cache_dir = os.getenv("WAYFINDER_CACHE_DIR")
    if cache_dir:
        data.setdefault("cache", {})["dir"] = cache_dir

    log_level = os.getenv("WAYFINDER_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    store_url = os.getenv("PLACES_STORE_URL")
    store_key = os.getenv("PLACES_STORE_KEY")
    if store_url:
        data.setdefault("providers", {}).setdefault("places_store", {})["base_url"] = store_url
    if store_key:
        data.setdefault("providers", {}).setdefault("places_store", {})["api_key"] = store_key

    geocoder_key = os.getenv("GEOCODER_API_KEY")
    if geocoder_key:
        data.setdefault("providers", {}).setdefault("geocoder", {})["api_key"] = geocoder_key

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("WAYFINDER_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
