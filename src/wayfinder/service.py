"""
Service wiring.

Builds the shared result cache, provider clients, position resolver and search aggregator
from `Settings`. The composing application (API process, CLI invocation) owns the
lifecycle: build once, share the cache, `clear_caches()` on explicit user reset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from wayfinder.config.settings import Settings, get_settings
from wayfinder.core.cache import ResultCache
from wayfinder.core.env import resolve_project_path
from wayfinder.core.storage import FileStorage, MemoryStorage, Storage
from wayfinder.providers.geocoder import GeocoderClient
from wayfinder.providers.ip_locator import IpLocator
from wayfinder.providers.places_store import PlacesStoreClient
from wayfinder.providers.sensor import SensorApi, UnavailableSensor
from wayfinder.resolver.position import PositionResolver
from wayfinder.search.aggregator import SearchAggregator

logger = logging.getLogger(__name__)


def build_storage(settings: Settings) -> Storage:
    if settings.cache.storage == "memory":
        return MemoryStorage()
    return FileStorage(resolve_project_path(settings.cache.dir))


def build_cache(settings: Settings, storage: Storage | None = None) -> ResultCache:
    cache = ResultCache(
        storage or build_storage(settings),
        enabled=settings.cache.enabled,
        position_ttl_seconds=settings.cache.position_ttl_seconds,
        geocode_ttl_seconds=settings.cache.geocode_ttl_seconds,
        max_geocode_entries=settings.cache.max_geocode_entries,
        precision=settings.cache.coordinate_precision,
    )
    cache.load()
    return cache


@dataclass
class WayfinderService:
    settings: Settings
    cache: ResultCache
    geocoder: GeocoderClient | None
    store: PlacesStoreClient | None
    ip_locator: IpLocator
    search: SearchAggregator

    def resolver(self, sensor: SensorApi | None = None) -> PositionResolver:
        """A resolver sharing this service's cache and clients, reading from `sensor`."""
        return PositionResolver(
            self.settings,
            self.cache,
            sensor=sensor or UnavailableSensor(),
            geocoder=self.geocoder,
            ip_locator=self.ip_locator,
        )

    def clear_caches(self) -> None:
        self.cache.clear_all()
        self.search.clear_memo()


def build_service(settings: Settings | None = None, *, cache: ResultCache | None = None) -> WayfinderService:
    settings = settings or get_settings()
    cache = cache or build_cache(settings)

    providers = settings.providers
    geocoder = GeocoderClient(settings) if providers.geocoder.api_key else None
    store = PlacesStoreClient(settings) if providers.places_store.base_url else None
    if geocoder is None:
        logger.info("Geocoder disabled (no GEOCODER_API_KEY); using offline region estimates")
    if store is None:
        logger.info("Places store disabled (no PLACES_STORE_URL)")

    return WayfinderService(
        settings=settings,
        cache=cache,
        geocoder=geocoder,
        store=store,
        ip_locator=IpLocator(settings),
        search=SearchAggregator(settings, cache, store=store, geocoder=geocoder),
    )
