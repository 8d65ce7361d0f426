import math

import pytest

from wayfinder.core.geo import GeoPoint, distance_meters, format_distance, format_duration, is_valid_coordinate


POINTS = [
    GeoPoint(lat=-4.3217, lon=15.3069),
    GeoPoint(lat=-4.3856, lon=15.4446),
    GeoPoint(lat=5.3600, lon=-4.0083),
    GeoPoint(lat=0.0, lon=0.0),
    GeoPoint(lat=89.9, lon=179.9),
    GeoPoint(lat=-90.0, lon=-180.0),
]


def test_distance_is_zero_for_identical_points_and_symmetric():
    for a in POINTS:
        assert distance_meters(a, a) == 0
        for b in POINTS:
            assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))


def test_distance_matches_one_degree_of_latitude():
    # 6_371_000 * pi / 180
    assert distance_meters(GeoPoint(0.0, 0.0), GeoPoint(1.0, 0.0)) == pytest.approx(111_194.93, abs=0.5)


def test_distance_handles_antipodal_points():
    d = distance_meters(GeoPoint(0.0, 0.0), GeoPoint(0.0, 180.0))
    assert d == pytest.approx(math.pi * 6_371_000, rel=1e-9)


def test_format_distance():
    assert format_distance(950) == "950m"
    assert format_distance(1500) == "1.5km"
    assert format_distance(0) == "0m"
    assert format_distance(999.4) == "999m"
    assert format_distance(12_345) == "12.3km"


def test_format_duration_rounds_into_the_largest_unit():
    assert format_duration(45) == "45s"
    assert format_duration(720) == "12min"
    assert format_duration(7200) == "2h"
    # No leftover minutes in the hour range.
    assert format_duration(4800) == "1h"


def test_is_valid_coordinate_rejects_out_of_range_and_nan():
    assert is_valid_coordinate(90, 180)
    assert is_valid_coordinate(-90, -180)
    assert not is_valid_coordinate(90.0001, 0)
    assert not is_valid_coordinate(0, -180.5)
    assert not is_valid_coordinate(float("nan"), 0)
    assert not is_valid_coordinate(0, float("inf"))
    assert not is_valid_coordinate("north", 0)


def test_formatters_round_before_picking_the_unit():
    assert format_distance(999.6) == "1.0km"
    assert format_duration(59.6) == "1min"
    assert format_duration(3599) == "1h"
