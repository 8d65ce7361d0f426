from __future__ import annotations

# Orchestrator for address search.
# It wires together:
# - curated popular places (instant, no I/O)
# - the structured places store (server-side relevance, optional proximity)
# - the external geocoder (fill-in only, query augmented with the city)
# - proximity deduplication, uniform scoring, debouncing and request memoization
#
# Design goal:
# - Never fail for I/O reasons: a broken source contributes zero results, and a query
#   with nothing at all still gets one clearly-labelled approximate entry.

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

from wayfinder.catalog.cities import City, default_city, find_city
from wayfinder.catalog.curated import CURATED_PLACES, CuratedPlace, places_for_city, popular_places
from wayfinder.config.overrides import apply_settings_overrides
from wayfinder.config.settings import Settings
from wayfinder.core.cache import ResultCache, coordinate_key
from wayfinder.core.coalesce import Debouncer, RequestCoalescer
from wayfinder.core.geo import GeoPoint, distance_meters, format_distance, is_valid_coordinate
from wayfinder.core.source_meta import record_source
from wayfinder.core.text import compact, fold, normalize_query
from wayfinder.domain.errors import InvalidCoordinates, RemoteSourceFailure
from wayfinder.domain.models import GeocodeHit, PlaceRow, SearchContext, SearchResult, SourceType
from wayfinder.providers.geocoder import GeocoderClient
from wayfinder.providers.places_store import PlacesStoreClient
from wayfinder.search.scoring import MatchKind, match_kind, relevance_score

logger = logging.getLogger(__name__)

FALLBACK_BADGE = "approximate"
POPULAR_BADGE = "popular"

# Google result types -> hierarchy level (1 = city ... 5 = point of interest).
_TYPE_LEVELS: list[tuple[str, int]] = [
    ("country", 1),
    ("administrative_area_level_1", 1),
    ("locality", 1),
    ("sublocality", 2),
    ("sublocality_level_1", 2),
    ("neighborhood", 3),
    ("route", 4),
    ("street_address", 4),
]


@dataclass
class _Candidate:
    result: SearchResult
    order: int


def hierarchy_level_for_types(types: list[str]) -> int:
    levels = [level for name, level in _TYPE_LEVELS if name in types]
    return min(levels) if levels else 5


def split_formatted_address(formatted: str) -> tuple[str, str | None]:
    """"Boulevard du 30 Juin, Gombe, Kinshasa" -> ("Boulevard du 30 Juin", "Gombe, Kinshasa")."""
    head, _, tail = formatted.partition(",")
    return head.strip() or formatted.strip(), tail.strip() or None


def _curated_result(place: CuratedPlace, score: float, *, badge: str | None = None) -> SearchResult:
    return SearchResult(
        id=place.id,
        title=place.title,
        subtitle=place.subtitle,
        address=place.address,
        latitude=place.lat,
        longitude=place.lon,
        source_type=SourceType.CURATED,
        relevance_score=score,
        hierarchy_level=place.hierarchy_level,
        badge=badge,
    )


def dedupe_by_proximity(candidates: list[_Candidate], radius_m: float) -> list[_Candidate]:
    """Keep candidates in the given (priority) order; drop repeats of an id or any point
    within `radius_m` of an already accepted one."""
    kept: list[_Candidate] = []
    seen_ids: set[str] = set()
    for cand in candidates:
        r = cand.result
        if r.id in seen_ids:
            continue
        point = GeoPoint(lat=r.latitude, lon=r.longitude)
        if any(
            distance_meters(point, GeoPoint(lat=k.result.latitude, lon=k.result.longitude)) < radius_m
            for k in kept
        ):
            logger.debug("Dropping %s (%s): within %gm of a kept result", r.id, r.source_type.value, radius_m)
            continue
        kept.append(cand)
        seen_ids.add(r.id)
    return kept


def rank(candidates: list[_Candidate], max_results: int) -> list[SearchResult]:
    """Sort by score desc, then source priority, then source order; truncate."""
    ordered = sorted(
        candidates,
        key=lambda c: (-c.result.relevance_score, c.result.source_type.priority, c.order),
    )
    return [c.result for c in ordered[: max(0, int(max_results))]]


def _with_distances(results: list[SearchResult], proximity: GeoPoint | None) -> list[SearchResult]:
    """Per-caller copies carrying the distance from `proximity` (None when unknown)."""
    out: list[SearchResult] = []
    for r in results:
        distance = None
        if proximity is not None:
            distance = round(distance_meters(proximity, GeoPoint(lat=r.latitude, lon=r.longitude)), 1)
        out.append(r.model_copy(update={"distance_meters": distance}))
    return out


class SearchAggregator:
    """Merge curated, store and geocoder results into one ranked, deduplicated list."""

    def __init__(
        self,
        settings: Settings,
        cache: ResultCache,
        *,
        store: PlacesStoreClient | None = None,
        geocoder: GeocoderClient | None = None,
    ):
        self._settings = settings
        self._cache = cache
        self._store = store
        self._geocoder = geocoder
        self.debouncer = Debouncer(settings.search.debounce_ms / 1000.0)
        self.coalescer = RequestCoalescer(settings.search.memo_ttl_seconds)

    @property
    def settings(self) -> Settings:
        return self._settings

    def clear_memo(self) -> None:
        self.coalescer.clear()

    # ---- public operations -------------------------------------------------

    async def search(
        self,
        query: str,
        context: SearchContext | None = None,
        *,
        settings_overrides: Mapping[str, Any] | None = None,
        use_cached_position: bool = True,
    ) -> list[SearchResult]:
        """Ranked results for `query`; never raises for I/O failures.

        Only calls carrying `context.stream` are debounced against each other. Without
        user coordinates the cached position of `context.device_id` is the proximity
        hint, unless `use_cached_position` is False.

        Raises:
            ValueError: if `settings_overrides` contains a disallowed key.
        """
        settings = apply_settings_overrides(self._settings, settings_overrides)
        ctx = context or SearchContext(max_results=settings.search.max_results_default)
        text = normalize_query(query)

        # Short queries get the popular listing, no scoring and no I/O.
        if len(text) < settings.search.min_query_length:
            return self.popular_places(ctx.city, ctx.max_results)

        proximity = self._proximity(ctx, use_cached_position)
        key: tuple[Any, ...] = (fold(text), compact(ctx.city), ctx.max_results)
        if settings_overrides:
            key += (json.dumps(settings_overrides, sort_keys=True, default=str),)

        async def expensive() -> list[SearchResult]:
            return await self.coalescer.run(key, lambda: self._run(text, ctx, proximity, settings))

        if ctx.stream:
            ranked = await self.debouncer.call(ctx.stream, expensive)
        else:
            ranked = await expensive()

        if not ranked:
            return [self._fallback_entry(text, self._city_for(ctx), proximity)]
        return _with_distances(ranked, proximity)

    def popular_places(self, city: str | None, max_results: int | None = None) -> list[SearchResult]:
        """Curated popular places for a city (unknown cities use the default city)."""
        limit = max_results or self._settings.search.max_results_default
        return [
            _curated_result(p, float(p.popularity), badge=POPULAR_BADGE) for p in popular_places(city, limit)
        ]

    def nearby_places(
        self,
        lat: float,
        lng: float,
        radius_km: float | None = None,
        max_results: int = 10,
    ) -> list[SearchResult]:
        """Curated places within `radius_km`, nearest first, subtitle "<distance> • <commune>"."""
        if not is_valid_coordinate(lat, lng):
            raise InvalidCoordinates(lat, lng)
        radius_m = float(radius_km if radius_km is not None else self._settings.search.nearby_radius_km) * 1000
        origin = GeoPoint(lat=float(lat), lon=float(lng))

        found: list[tuple[float, CuratedPlace]] = []
        for place in CURATED_PLACES:
            d = distance_meters(origin, GeoPoint(lat=place.lat, lon=place.lon))
            if d <= radius_m:
                found.append((d, place))
        found.sort(key=lambda item: item[0])

        results: list[SearchResult] = []
        for d, place in found[: max(0, int(max_results))]:
            score = round(100.0 * (1.0 - d / radius_m), 2) if radius_m > 0 else 0.0
            result = _curated_result(place, score)
            results.append(
                result.model_copy(
                    update={"subtitle": f"{format_distance(d)} • {place.commune}", "distance_meters": round(d, 1)}
                )
            )
        return results

    # ---- pipeline ------------------------------------------------------------

    def _proximity(self, ctx: SearchContext, use_cached_position: bool = True) -> GeoPoint | None:
        if ctx.user_lat is not None and ctx.user_lng is not None:
            return GeoPoint(lat=ctx.user_lat, lon=ctx.user_lng)
        if not use_cached_position:
            return None
        cached = self._cache.get_current_position(ctx.device_id)
        if cached is not None:
            return GeoPoint(lat=cached.latitude, lon=cached.longitude)
        return None

    @staticmethod
    def _city_for(ctx: SearchContext) -> City | None:
        return find_city(ctx.city) if ctx.city else default_city()

    async def _run(
        self, text: str, ctx: SearchContext, proximity: GeoPoint | None, settings: Settings
    ) -> list[SearchResult]:
        """Ranked, caller-independent results (no distances, no fallback entry); memoized."""
        started = time.perf_counter()
        scoring = settings.search.scoring
        city = self._city_for(ctx)

        curated = self._from_curated(text, city, settings)
        record_source("curated", {"status": "ok" if curated else "empty", "count": len(curated)})

        store_results = await self._from_store(text, ctx, city, proximity, settings)

        geocoded: list[SearchResult] = []
        if len(curated) + len(store_results) < ctx.max_results:
            geocoded = await self._from_geocoder(text, ctx, city, settings)
        else:
            record_source("geocoder", {"status": "skipped", "count": 0})

        # Priority order drives deduplication: earlier sources win.
        candidates = [
            _Candidate(result=r, order=i)
            for batch in (curated, store_results, geocoded)
            for i, r in enumerate(batch)
        ]
        for cand in candidates:
            r = cand.result
            kind = match_kind(text, r.title, subtitle=r.subtitle, extra=(r.address,))
            if r.source_type is not SourceType.CURATED:
                r.relevance_score = relevance_score(kind, r.source_type, scoring)

        kept = dedupe_by_proximity(candidates, settings.search.dedup_radius_m)
        results = rank(kept, ctx.max_results)

        logger.info(
            "Search %r (%s): %d curated, %d store, %d geocoded -> %d results in %dms",
            text,
            city.name if city else ctx.city,
            len(curated),
            len(store_results),
            len(geocoded),
            len(results),
            int((time.perf_counter() - started) * 1000),
        )
        return results

    def _from_curated(self, text: str, city: City | None, settings: Settings) -> list[SearchResult]:
        if city is None:
            return []
        scoring = settings.search.scoring
        results: list[SearchResult] = []
        for place in places_for_city(city.name):
            kind = match_kind(text, place.title, subtitle=place.subtitle, aliases=place.aliases, extra=(place.address,))
            if kind is MatchKind.NONE:
                continue
            results.append(_curated_result(place, relevance_score(kind, SourceType.CURATED, scoring)))
        # Best curated matches first so they win proximity ties inside the source.
        results.sort(key=lambda r: -r.relevance_score)
        return results

    async def _from_store(
        self,
        text: str,
        ctx: SearchContext,
        city: City | None,
        proximity: GeoPoint | None,
        settings: Settings,
    ) -> list[SearchResult]:
        if self._store is None:
            record_source("places_store", {"status": "skipped", "count": 0})
            return []
        started = time.perf_counter()
        try:
            rows = await asyncio.wait_for(
                self._store.query(
                    text,
                    city=city.name if city else ctx.city,
                    country_code=ctx.country_code or (city.country_code if city else settings.app.country_code),
                    user_lat=proximity.lat if proximity else None,
                    user_lng=proximity.lon if proximity else None,
                    max_results=ctx.max_results,
                    min_hierarchy_level=settings.search.min_hierarchy_level,
                ),
                timeout=float(settings.search.store_timeout_seconds),
            )
        except (RemoteSourceFailure, asyncio.TimeoutError) as exc:
            error = str(exc) or "timeout"
            logger.warning("Places store failed for %r: %s", text, error)
            record_source("places_store", {"status": "error", "error": error, "count": 0})
            return []

        results = [self._row_to_result(row) for row in rows if is_valid_coordinate(row.latitude, row.longitude)]
        record_source(
            "places_store",
            {
                "status": "ok" if results else "empty",
                "count": len(results),
                "duration_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return results

    @staticmethod
    def _row_to_result(row: PlaceRow) -> SearchResult:
        subtitle = ", ".join(p for p in (row.commune, row.city) if p) or None
        return SearchResult(
            id=f"store:{row.id}",
            title=row.name,
            subtitle=subtitle,
            address=", ".join(p for p in (row.name, row.commune, row.city) if p),
            latitude=row.latitude,
            longitude=row.longitude,
            source_type=SourceType.STRUCTURED_STORE,
            hierarchy_level=row.hierarchy_level,
            badge=row.badge,
        )

    async def _from_geocoder(
        self, text: str, ctx: SearchContext, city: City | None, settings: Settings
    ) -> list[SearchResult]:
        if self._geocoder is None:
            record_source("geocoder", {"status": "skipped", "count": 0})
            return []
        city_name = city.name if city else ctx.city
        augmented = f"{text}, {city_name}" if city_name else text
        region = ctx.country_code or (city.country_code if city else settings.app.country_code)
        try:
            hits = await asyncio.wait_for(
                self._geocoder.search(augmented, region),
                timeout=float(settings.search.geocoder_timeout_seconds),
            )
        except (RemoteSourceFailure, asyncio.TimeoutError) as exc:
            error = str(exc) or "timeout"
            logger.warning("Geocoder search failed for %r: %s", augmented, error)
            record_source("geocoder", {"status": "error", "error": error, "count": 0})
            return []

        results: list[SearchResult] = []
        for hit in hits[: settings.search.geocoder_max_results]:
            if not is_valid_coordinate(hit.lat, hit.lng):
                continue
            self._cache.set_geocode_result(hit.lat, hit.lng, hit.formatted_address)
            results.append(self._hit_to_result(hit))
        record_source("geocoder", {"status": "ok" if results else "empty", "count": len(results)})
        return results

    @staticmethod
    def _hit_to_result(hit: GeocodeHit) -> SearchResult:
        title, subtitle = split_formatted_address(hit.formatted_address)
        return SearchResult(
            id=f"geo:{hit.place_id or coordinate_key(hit.lat, hit.lng)}",
            title=title,
            subtitle=subtitle,
            address=hit.formatted_address,
            latitude=hit.lat,
            longitude=hit.lng,
            source_type=SourceType.GEOCODED_EXTERNAL,
            hierarchy_level=hierarchy_level_for_types(hit.types),
        )

    def _fallback_entry(self, text: str, city: City | None, proximity: GeoPoint | None) -> SearchResult:
        if city is not None:
            point, label, address = city.center, city.name, city.address
        elif proximity is not None:
            point, label, address = proximity, "votre position", None
        else:
            home = default_city()
            point, label, address = home.center, home.name, home.address
        return SearchResult(
            id=f"fallback:{compact(label) or 'unknown'}",
            title=text,
            subtitle=f"Position approximative, {label}",
            address=address,
            latitude=point.lat,
            longitude=point.lon,
            source_type=SourceType.GEOCODED_EXTERNAL,
            relevance_score=0.0,
            hierarchy_level=1,
            badge=FALLBACK_BADGE,
            is_fallback=True,
        )
