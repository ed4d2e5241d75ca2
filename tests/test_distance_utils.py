import math

import pytest

from distance_utils import calculate_distance, distance_between, format_distance, sort_by_distance
from models import Coordinate

KM_PER_DEGREE = 6371 * math.pi / 180


def test_one_degree_of_latitude():
    assert calculate_distance(0, 0, 1, 0) == pytest.approx(KM_PER_DEGREE, rel=1e-9)


def test_one_degree_of_longitude_at_equator():
    assert calculate_distance(0, 0, 0, 1) == pytest.approx(KM_PER_DEGREE, rel=1e-9)


def test_antipodal_points():
    assert calculate_distance(0, 0, 0, 180) == pytest.approx(math.pi * 6371)


@pytest.mark.parametrize("a,b", [
    ((35.6812, 139.7671), (34.7025, 135.4959)),
    ((-33.8688, 151.2093), (51.5074, -0.1278)),
    ((89.9, 10.0), (-89.9, -170.0)),
])
def test_distance_is_symmetric(a, b):
    assert calculate_distance(*a, *b) == pytest.approx(calculate_distance(*b, *a))


def test_coincident_points_are_zero():
    assert calculate_distance(35.0, 139.0, 35.0, 139.0) == 0


def test_nan_input_propagates():
    assert math.isnan(calculate_distance(float('nan'), 139.0, 35.0, 139.0))


def test_distance_between_coordinates():
    a = Coordinate(0, 0)
    b = Coordinate(1, 0)
    assert distance_between(a, b) == pytest.approx(KM_PER_DEGREE)


def test_format_distance():
    assert format_distance(0.05) == "50m"
    assert format_distance(0.9994) == "999m"
    assert format_distance(1) == "1.0km"
    assert format_distance(12.345) == "12.3km"


def test_sort_by_distance_orders_nearest_first(make_experience):
    far = make_experience(id='far', latitude=35.1)
    near = make_experience(id='near', latitude=35.001)
    mid = make_experience(id='mid', latitude=35.05)

    ranked = sort_by_distance([far, near, mid], Coordinate(35.0, 139.0))

    assert [r.experience.id for r in ranked] == ['near', 'mid', 'far']
    assert ranked[0].distance_km < ranked[1].distance_km < ranked[2].distance_km


def test_sort_by_distance_without_reference_keeps_order(make_experience):
    experiences = [make_experience(id='a'), make_experience(id='b')]
    ranked = sort_by_distance(experiences, None)
    assert [r.experience.id for r in ranked] == ['a', 'b']
    assert all(r.distance_km is None for r in ranked)
