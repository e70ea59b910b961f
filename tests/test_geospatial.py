import math

import pytest

from src.nurse_scheduler.errors import InvalidCoordinateError
from src.nurse_scheduler.services.geospatial import (
    haversine_km,
    is_missing_coordinate,
    is_usable_coordinate,
    proxy_distance_m,
    validate_coordinate,
)


def test_haversine_one_degree_of_latitude():
    assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, rel=1e-3)


def test_proxy_distance_is_planar_degrees_in_meters():
    assert proxy_distance_m((0.0, 0.0), (3.0, 4.0)) == pytest.approx(5 * 111_320)
    assert proxy_distance_m((33.9, -98.5), (33.9, -98.5)) == 0.0


def test_missing_coordinate_detection():
    assert is_missing_coordinate(None, 10.0)
    assert is_missing_coordinate(math.nan, 10.0)
    assert is_missing_coordinate(0.0, 0.0)
    assert is_missing_coordinate(0.0005, -0.0005)
    assert not is_missing_coordinate(0.01, 0.0)
    assert not is_missing_coordinate(33.9137, -98.4934)


def test_usable_coordinate_requires_range():
    assert is_usable_coordinate(33.9, -98.5)
    assert not is_usable_coordinate(91.0, 0.5)
    assert not is_usable_coordinate(10.0, 181.0)


def test_validate_coordinate_rejects_out_of_range():
    with pytest.raises(InvalidCoordinateError):
        validate_coordinate((95.0, 10.0), label="Stop A")


def test_validate_coordinate_placeholder_handling():
    with pytest.raises(InvalidCoordinateError):
        validate_coordinate((0.0, 0.0), label="Depot")

    validate_coordinate((0.0, 0.0), label="Depot", reject_missing=False)


@pytest.mark.parametrize("latitude", [math.inf, -math.inf, math.nan])
def test_non_finite_coordinates_are_missing_not_errors(latitude):
    assert is_missing_coordinate(latitude, -98.5)
    assert not is_usable_coordinate(latitude, -98.5)
    with pytest.raises(InvalidCoordinateError):
        validate_coordinate((latitude, -98.5), label="Stop A", reject_missing=False)


def test_out_of_range_coordinates_are_unusable_but_not_placeholders():
    assert not is_missing_coordinate(1e300, 1e300)
    assert not is_usable_coordinate(1e300, 1e300)
