import math
from types import SimpleNamespace

import pytest

from reliefgrid.errors import InvalidCoordinate
from reliefgrid.services.geospatial import (
    haversine_km,
    point_in_polygon,
    travel_time_minutes,
    validate_coordinate,
    zone_containing,
)

SQUARE = [(24.0, 46.0), (24.0, 47.0), (25.0, 47.0), (25.0, 46.0)]


def test_haversine_identical_points_is_zero() -> None:
    assert haversine_km(24.7136, 46.6753, 24.7136, 46.6753) == 0.0


def test_haversine_one_degree_on_equator() -> None:
    assert haversine_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.19, abs=0.01)


def test_haversine_antipodal_points_is_half_circumference() -> None:
    assert haversine_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(20015.09, abs=0.01)


def test_haversine_is_symmetric_and_rounded() -> None:
    forward = haversine_km(24.7136, 46.6753, 21.4858, 39.1925)
    backward = haversine_km(21.4858, 39.1925, 24.7136, 46.6753)
    assert forward == backward
    assert forward == round(forward, 2)


@pytest.mark.parametrize(
    "lat, lon",
    [(91.0, 0.0), (-90.5, 0.0), (0.0, 180.5), (float("nan"), 0.0), (0.0, float("inf")), (None, 0.0), ("24", 46.0)],
)
def test_invalid_coordinates_are_rejected(lat, lon) -> None:
    with pytest.raises(InvalidCoordinate):
        haversine_km(lat, lon, 0.0, 0.0)


def test_boundary_coordinates_are_accepted() -> None:
    validate_coordinate(90.0, 180.0)
    validate_coordinate(-90.0, -180.0)


def test_travel_time_rounds_up_to_whole_minutes() -> None:
    assert travel_time_minutes(0.0) == 0
    assert travel_time_minutes(5.0) == 10
    assert travel_time_minutes(1.01) == 3
    assert travel_time_minutes(2.5, minutes_per_km=3.0) == 8


def test_travel_time_rejects_negative_or_non_finite_distance() -> None:
    with pytest.raises(InvalidCoordinate):
        travel_time_minutes(-1.0)
    with pytest.raises(InvalidCoordinate):
        travel_time_minutes(math.inf)


def test_point_in_polygon() -> None:
    assert point_in_polygon(24.5, 46.5, SQUARE)
    assert not point_in_polygon(26.0, 46.5, SQUARE)
    assert not point_in_polygon(24.5, 46.5, SQUARE[:2])


def test_zone_containing_skips_inactive_and_unbounded_zones() -> None:
    inactive = SimpleNamespace(name="Closed", is_active=False, boundary=[list(pair) for pair in SQUARE])
    unbounded = SimpleNamespace(name="Centre only", is_active=True, boundary=None)
    downtown = SimpleNamespace(name="Downtown", is_active=True, boundary=[list(pair) for pair in SQUARE])

    assert zone_containing(24.5, 46.5, [inactive, unbounded, downtown]) is downtown
    assert zone_containing(30.0, 30.0, [inactive, unbounded, downtown]) is None
