import asyncio

import pytest

from wayfinder.domain.errors import RemoteSourceFailure
from wayfinder.domain.models import (
    AddressSource,
    GeocodeHit,
    PlaceRow,
    Position,
    PositionSource,
    SearchContext,
    SourceType,
)
from wayfinder.search.aggregator import SearchAggregator, split_formatted_address


class _StubStore:
    def __init__(self, rows=None, error: Exception | None = None):
        self.rows = rows or []
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def query(self, text, **kwargs):
        self.calls.append((text, kwargs))
        if self.error is not None:
            raise self.error
        return list(self.rows)


class _StubGeocoder:
    def __init__(self, hits=None, error: Exception | None = None):
        self.hits = hits or []
        self.error = error
        self.calls: list[tuple[str, str | None]] = []

    async def search(self, text, region_hint=None):
        self.calls.append((text, region_hint))
        if self.error is not None:
            raise self.error
        return list(self.hits)


def _row(id, name, lat, lon, **extra) -> PlaceRow:
    return PlaceRow(id=id, name=name, latitude=lat, longitude=lon, commune=extra.pop("commune", None), city="Kinshasa", **extra)


def _kinshasa(**kwargs) -> SearchContext:
    return SearchContext(city="Kinshasa", country_code="CD", **kwargs)


def test_aero_offline_returns_curated_airport(make_settings, memory_cache):
    store = _StubStore(error=RemoteSourceFailure("places_store", "connection refused"))
    geocoder = _StubGeocoder(error=RemoteSourceFailure("geocoder", "status=OVER_QUERY_LIMIT"))
    agg = SearchAggregator(make_settings(), memory_cache, store=store, geocoder=geocoder)

    results = asyncio.run(agg.search("aero", _kinshasa()))

    assert results[0].id == "kin-airport-ndjili"
    assert results[0].title == "Aéroport N'djili"
    assert results[0].source_type == SourceType.CURATED
    assert not any(r.is_fallback for r in results)
    assert len(store.calls) == 1
    assert len(geocoder.calls) == 1


def test_search_is_idempotent(make_settings, memory_cache):
    rows = [
        _row(1, "Gombe Mall", -4.3000, 15.3000, commune="Gombe"),
        _row(2, "Rond-point Gombe", -4.2900, 15.2800, commune="Gombe"),
    ]
    settings = make_settings()
    agg = SearchAggregator(settings, memory_cache, store=_StubStore(rows))
    first = asyncio.run(agg.search("gombe", _kinshasa()))
    second = asyncio.run(agg.search("gombe", _kinshasa()))
    # A fresh aggregator (no memo) must rank identically too.
    third = asyncio.run(SearchAggregator(settings, memory_cache, store=_StubStore(rows)).search("gombe", _kinshasa()))

    assert [r.id for r in first] == [r.id for r in second] == [r.id for r in third]
    assert first[0].id == "kin-gombe-centre"


def test_results_are_sorted_and_ids_unique(make_settings, memory_cache):
    rows = [
        _row(1, "Marché Gambela", -4.3400, 15.2900),
        _row(2, "Petit marché", -4.4000, 15.2500),
        _row(3, "Supermarché City Market", -4.3000, 15.2700),
    ]
    agg = SearchAggregator(make_settings(), memory_cache, store=_StubStore(rows))
    results = asyncio.run(agg.search("marche", _kinshasa()))

    scores = [r.relevance_score for r in results]
    assert scores == sorted(scores, reverse=True)
    assert len({r.id for r in results}) == len(results)
    # Exact alias match on a curated place beats the store's prefix match.
    assert results[0].id == "kin-marche-central"


def test_ties_break_by_source_priority(make_settings, memory_cache):
    # Same match kind and bonuses tuned so curated and store score equally.
    settings = make_settings(search={"scoring": {"source": {"curated": 20, "structured_store": 20}}})
    rows = [_row(9, "Stade du 24 Novembre", -4.3300, 15.3300)]
    agg = SearchAggregator(settings, memory_cache, store=_StubStore(rows))

    # Prefix match for both "Stade des Martyrs" (curated) and the store row.
    results = asyncio.run(agg.search("stade d", _kinshasa()))

    assert [r.source_type for r in results[:2]] == [SourceType.CURATED, SourceType.STRUCTURED_STORE]
    assert results[0].relevance_score == results[1].relevance_score


def test_proximity_dedup_drops_within_500m_and_keeps_600m(make_settings, memory_cache):
    store = _StubStore([_row(1, "Hotel Memling", -4.3000, 15.3000)])
    geocoder = _StubGeocoder(
        [
            # ~400 m north of the store row: duplicate, dropped.
            GeocodeHit(formatted_address="Hotel Memling, Avenue Tchad, Kinshasa", lat=-4.2964, lng=15.3000, place_id="near"),
            # ~600 m south: distinct place, kept.
            GeocodeHit(formatted_address="Memling Annexe, Gombe, Kinshasa", lat=-4.3054, lng=15.3000, place_id="far"),
        ]
    )
    agg = SearchAggregator(make_settings(), memory_cache, store=store, geocoder=geocoder)

    results = asyncio.run(agg.search("memling", _kinshasa()))

    assert [r.id for r in results] == ["store:1", "geo:far"]


def test_geocoder_is_only_a_fill_in(make_settings, memory_cache):
    rows = [_row(i, f"Boulangerie {i}", -4.30 - i * 0.01, 15.30) for i in range(3)]
    geocoder = _StubGeocoder([GeocodeHit(formatted_address="Boulangerie X, Kinshasa", lat=-4.5, lng=15.5)])
    agg = SearchAggregator(make_settings(), memory_cache, store=_StubStore(rows), geocoder=geocoder)

    results = asyncio.run(agg.search("boulangerie", _kinshasa(max_results=3)))

    assert len(results) == 3
    assert geocoder.calls == []


def test_geocoder_query_is_augmented_and_written_through(make_settings, memory_cache):
    hit = GeocodeHit(formatted_address="Avenue Kasa-Vubu, Kalamu, Kinshasa", lat=-4.3450, lng=15.3100, place_id="kv")
    geocoder = _StubGeocoder([hit])
    agg = SearchAggregator(make_settings(), memory_cache, geocoder=geocoder)

    results = asyncio.run(agg.search("kasa-vubu", _kinshasa()))

    assert geocoder.calls == [("kasa-vubu, Kinshasa", "CD")]
    assert results[0].title == "Avenue Kasa-Vubu"
    assert results[0].subtitle == "Kalamu, Kinshasa"
    assert memory_cache.get_geocode_result(-4.3450, 15.3100) == "Avenue Kasa-Vubu, Kalamu, Kinshasa"


def test_debounced_calls_produce_one_remote_call(make_settings, memory_cache):
    store = _StubStore([_row(7, "Kintambo Magasin", -4.3300, 15.2700)])
    agg = SearchAggregator(make_settings(search={"debounce_ms": 300}), memory_cache, store=store)

    async def scenario():
        first = asyncio.ensure_future(agg.search("ki", _kinshasa(stream="typing")))
        await asyncio.sleep(0.05)
        second = asyncio.ensure_future(agg.search("kin", _kinshasa(stream="typing")))
        return await asyncio.gather(first, second)

    first, second = asyncio.run(scenario())

    assert len(store.calls) == 1
    assert store.calls[0][0] == "kin"
    assert [r.id for r in first] == [r.id for r in second]


def test_identical_requests_are_memoized(make_settings, memory_cache):
    store = _StubStore([_row(1, "Pharmacie Centrale", -4.3100, 15.3000)])
    agg = SearchAggregator(make_settings(), memory_cache, store=store)

    asyncio.run(agg.search("pharmacie", _kinshasa()))
    asyncio.run(agg.search("Pharmacie", _kinshasa()))
    assert len(store.calls) == 1

    agg.clear_memo()
    asyncio.run(agg.search("pharmacie", _kinshasa()))
    assert len(store.calls) == 2


def test_short_query_returns_popular_places_without_io(make_settings, memory_cache):
    store = _StubStore()
    agg = SearchAggregator(make_settings(), memory_cache, store=store)

    results = asyncio.run(agg.search(" k ", _kinshasa(max_results=3)))

    assert store.calls == []
    assert len(results) == 3
    assert results[0].id == "kin-airport-ndjili"
    assert all(r.badge == "popular" for r in results)


def test_nothing_found_yields_one_approximate_entry(make_settings, memory_cache):
    agg = SearchAggregator(make_settings(), memory_cache, store=_StubStore(), geocoder=_StubGeocoder())

    results = asyncio.run(agg.search("xyzzy", _kinshasa()))

    assert len(results) == 1
    fallback = results[0]
    assert fallback.is_fallback
    assert fallback.badge == "approximate"
    assert (fallback.latitude, fallback.longitude) == (-4.3217, 15.3069)


def test_cached_position_is_used_as_proximity_hint(make_settings, memory_cache):
    memory_cache.set_current_position(
        Position(
            address="Limete, Kinshasa",
            latitude=-4.38,
            longitude=15.29,
            source=PositionSource.SENSOR,
            address_source=AddressSource.REGION_ESTIMATE,
        )
    )
    store = _StubStore([_row(3, "Station Total Limete", -4.3700, 15.2950)])
    agg = SearchAggregator(make_settings(), memory_cache, store=store)

    results = asyncio.run(agg.search("station", _kinshasa()))

    _, kwargs = store.calls[0]
    assert (kwargs["user_lat"], kwargs["user_lng"]) == (-4.38, 15.29)
    assert results[0].distance_meters is not None


def test_popular_places_are_ranked_by_popularity(make_settings, memory_cache):
    agg = SearchAggregator(make_settings(), memory_cache)
    results = agg.popular_places("Abidjan", 2)
    assert [r.id for r in results] == ["abj-airport-fhb", "abj-plateau"]


def test_nearby_places_sorted_by_distance_with_commune(make_settings, memory_cache):
    agg = SearchAggregator(make_settings(), memory_cache)

    results = agg.nearby_places(-4.3217, 15.3069, radius_km=1)

    assert [r.id for r in results] == ["kin-marche-central", "kin-gombe-centre"]
    assert results[0].subtitle == "0m • Kinshasa"
    assert results[1].subtitle.endswith("m • Gombe")
    assert results[0].distance_meters == 0

    with pytest.raises(ValueError):
        agg.nearby_places(120.0, 15.0)


def test_disallowed_search_override_is_rejected(make_settings, memory_cache):
    agg = SearchAggregator(make_settings(), memory_cache)
    with pytest.raises(ValueError, match=r"search\.debounce_ms"):
        asyncio.run(agg.search("gombe", _kinshasa(), settings_overrides={"search": {"debounce_ms": 0}}))


def test_split_formatted_address():
    assert split_formatted_address("Boulevard du 30 Juin, Gombe, Kinshasa") == ("Boulevard du 30 Juin", "Gombe, Kinshasa")
    assert split_formatted_address("Kinshasa") == ("Kinshasa", None)


def test_searches_without_a_stream_are_never_merged(make_settings, memory_cache):
    store = _StubStore(
        [_row(1, "Pharmacie Centrale", -4.3100, 15.3000), _row(2, "Hotel Memling", -4.3000, 15.3100)]
    )
    agg = SearchAggregator(make_settings(search={"debounce_ms": 300}), memory_cache, store=store)

    async def scenario():
        first = asyncio.ensure_future(agg.search("pharmacie", _kinshasa()))
        await asyncio.sleep(0.05)
        second = asyncio.ensure_future(agg.search("hotel", _kinshasa()))
        return await asyncio.gather(first, second)

    pharmacie, hotel = asyncio.run(scenario())

    assert sorted(text for text, _ in store.calls) == ["hotel", "pharmacie"]
    assert pharmacie[0].title == "Pharmacie Centrale"
    assert hotel[0].title == "Hotel Memling"


def test_memoized_results_carry_each_callers_own_distance(make_settings, memory_cache):
    store = _StubStore([_row(1, "Hotel Memling", -4.3000, 15.3100)])
    agg = SearchAggregator(make_settings(), memory_cache, store=store)

    near = asyncio.run(agg.search("hotel", _kinshasa(user_lat=-4.3000, user_lng=15.3100)))
    far = asyncio.run(agg.search("hotel", _kinshasa(user_lat=-4.6000, user_lng=15.6000)))
    nowhere = asyncio.run(agg.search("hotel", _kinshasa()))

    assert len(store.calls) == 1
    assert near[0].distance_meters == 0.0
    assert far[0].distance_meters > 40_000
    assert nowhere[0].distance_meters is None
    assert near[0] is not far[0]


def test_cached_position_hint_is_per_device(make_settings, memory_cache):
    memory_cache.set_current_position(
        Position(
            address="Limete, Kinshasa",
            latitude=-4.38,
            longitude=15.29,
            source=PositionSource.SENSOR,
            address_source=AddressSource.REGION_ESTIMATE,
        ),
        device_id="phone-a",
    )
    store = _StubStore([_row(3, "Station Total Limete", -4.3700, 15.2950)])
    agg = SearchAggregator(make_settings(), memory_cache, store=store)

    other = asyncio.run(agg.search("station", _kinshasa(device_id="phone-b")))
    owner = asyncio.run(agg.search("station", _kinshasa(device_id="phone-a", max_results=9)))
    skipped = asyncio.run(
        agg.search("station", _kinshasa(device_id="phone-a", max_results=8), use_cached_position=False)
    )

    assert store.calls[0][1]["user_lat"] is None
    assert other[0].distance_meters is None
    assert store.calls[1][1]["user_lat"] == -4.38
    assert owner[0].distance_meters is not None
    assert skipped[0].distance_meters is None
