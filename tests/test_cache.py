import pytest

from wayfinder.core.cache import GEOCODE_KEY, POSITION_KEY, ResultCache, coordinate_key, record_cache_stats
from wayfinder.core.storage import FileStorage, MemoryStorage
from wayfinder.domain.models import AddressSource, Position, PositionSource


class _Clock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class _BrokenStorage:
    """Reads work, every write fails (e.g. quota exceeded)."""

    def get(self, key):
        return None

    def set(self, key, value):
        raise OSError("quota exceeded")

    def remove(self, key):
        raise OSError("read-only")


def _position(lat=-4.3175, lon=15.3117) -> Position:
    return Position(
        address="Gombe, Kinshasa",
        latitude=lat,
        longitude=lon,
        source=PositionSource.SENSOR,
        address_source=AddressSource.REGION_ESTIMATE,
    )


@pytest.fixture
def clock(monkeypatch):
    c = _Clock()
    monkeypatch.setattr("wayfinder.core.cache.time.time", c)
    return c


def test_geocode_round_trip_then_expires_after_ttl(clock):
    cache = ResultCache(MemoryStorage(), geocode_ttl_seconds=1800)
    cache.set_geocode_result(-4.3217, 15.3069, "Marché Central, Kinshasa")
    assert cache.get_geocode_result(-4.3217, 15.3069) == "Marché Central, Kinshasa"

    clock.now += 1800
    assert cache.get_geocode_result(-4.3217, 15.3069) == "Marché Central, Kinshasa"

    clock.now += 1
    assert cache.get_geocode_result(-4.3217, 15.3069) is None
    # Expired entries are removed on read.
    assert cache.geocode_size() == 0


def test_nearby_coordinates_share_a_grid_cell(clock):
    cache = ResultCache(MemoryStorage())
    cache.set_geocode_result(-4.32171, 15.30691, "Marché Central")
    assert cache.get_geocode_result(-4.32174, 15.30689) == "Marché Central"
    assert coordinate_key(-0.00001, 0.0) == coordinate_key(0.0, 0.0) == "0.0000,0.0000"


def test_capacity_keeps_most_recent_entries(clock):
    cache = ResultCache(MemoryStorage(), max_geocode_entries=5)
    for i in range(8):
        clock.now += 1
        cache.set_geocode_result(1.0 + i, 2.0, f"addr-{i}")

    assert cache.geocode_size() == 5
    for i in range(3):
        assert cache.get_geocode_result(1.0 + i, 2.0) is None
    for i in range(3, 8):
        assert cache.get_geocode_result(1.0 + i, 2.0) == f"addr-{i}"


def test_capacity_with_equal_timestamps_evicts_in_insertion_order(clock):
    cache = ResultCache(MemoryStorage(), max_geocode_entries=2)
    for i in range(4):
        cache.set_geocode_result(10.0 + i, 20.0, f"addr-{i}")
    assert cache.geocode_keys() == [coordinate_key(12.0, 20.0), coordinate_key(13.0, 20.0)]


def test_resetting_a_key_overwrites_instead_of_merging(clock):
    cache = ResultCache(MemoryStorage())
    cache.set_geocode_result(1.0, 2.0, "first")
    cache.set_geocode_result(1.0, 2.0, "second")
    assert cache.get_geocode_result(1.0, 2.0) == "second"
    assert cache.geocode_size() == 1


def test_current_position_ttl(clock):
    cache = ResultCache(MemoryStorage(), position_ttl_seconds=300)
    position = _position()
    cache.set_current_position(position)

    clock.now += 300
    assert cache.get_current_position() == position

    clock.now += 1
    assert cache.get_current_position() is None


def test_regions_survive_restart_via_file_storage(clock, tmp_path):
    position = _position()
    first = ResultCache(FileStorage(tmp_path))
    first.set_current_position(position)
    first.set_geocode_result(-4.3217, 15.3069, "Marché Central")

    second = ResultCache(FileStorage(tmp_path))
    second.load()
    assert second.get_current_position() == position
    assert second.get_geocode_result(-4.3217, 15.3069) == "Marché Central"


def test_storage_write_failures_are_swallowed(clock):
    cache = ResultCache(_BrokenStorage())
    with record_cache_stats() as stats:
        cache.set_geocode_result(1.0, 2.0, "still cached in memory")
        cache.set_current_position(_position())
        cache.clear_all()
    assert stats.persist_errors >= 3
    assert stats.sets == 2


def test_corrupt_payloads_are_ignored_on_load(clock):
    storage = MemoryStorage()
    storage.set(GEOCODE_KEY, b"not json")
    storage.set(POSITION_KEY, b'{"value": {"latitude": 500}}')
    cache = ResultCache(storage)
    cache.load()
    assert cache.geocode_size() == 0
    assert cache.get_current_position() is None


def test_clear_all_wipes_memory_and_storage(clock):
    storage = MemoryStorage()
    cache = ResultCache(storage)
    cache.set_current_position(_position())
    cache.set_geocode_result(1.0, 2.0, "x")
    assert storage.keys()

    cache.clear_all()
    assert cache.get_current_position() is None
    assert cache.get_geocode_result(1.0, 2.0) is None
    assert storage.keys() == []


def test_disabled_cache_never_returns_values(clock):
    cache = ResultCache(MemoryStorage(), enabled=False)
    cache.set_geocode_result(1.0, 2.0, "x")
    cache.set_current_position(_position())
    assert cache.get_geocode_result(1.0, 2.0) is None
    assert cache.get_current_position() is None


def test_stats_count_hits_and_misses(clock):
    cache = ResultCache(MemoryStorage())
    with record_cache_stats() as stats:
        assert cache.get_geocode_result(1.0, 2.0) is None
        cache.set_geocode_result(1.0, 2.0, "x")
        assert cache.get_geocode_result(1.0, 2.0) == "x"
    assert stats.as_dict()["hits"] == 1
    assert stats.as_dict()["misses"] == 1


def test_device_position_slots_are_independent(clock):
    cache = ResultCache(MemoryStorage(), position_ttl_seconds=300)
    phone = _position()
    cache.set_current_position(phone, device_id="phone-a")

    assert cache.get_current_position("phone-a") == phone
    assert cache.get_current_position("phone-b") is None
    assert cache.get_current_position() is None

    clock.now += 301
    assert cache.get_current_position("phone-a") is None

    cache.set_current_position(phone, device_id="phone-a")
    cache.clear_all()
    assert cache.get_current_position("phone-a") is None
