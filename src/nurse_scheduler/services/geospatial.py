"""Geospatial helper functions."""

from __future__ import annotations

import math

from shapely.geometry import Point

from ..config import settings
from ..errors import InvalidCoordinateError
from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0
# Coordinates this close to (0, 0) are unset placeholders from seed data.
MISSING_COORDINATE_RADIUS_KM = 0.1


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def proxy_distance_m(origin: Coordinate, destination: Coordinate) -> float:
    """Planar degree distance scaled to meters.

    Used wherever a road distance is not available: it keeps the optimizer's
    cost O(1) per pair and gives the straight-line fallback its length.
    """
    return Point(origin).distance(Point(destination)) * settings.meters_per_degree


def in_range(latitude: float, longitude: float) -> bool:
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def is_missing_coordinate(latitude: float | None, longitude: float | None) -> bool:
    if latitude is None or longitude is None:
        return True
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return True
    if not in_range(latitude, longitude):
        return False
    return haversine_km(latitude, longitude, 0.0, 0.0) <= MISSING_COORDINATE_RADIUS_KM


def is_usable_coordinate(latitude: float | None, longitude: float | None) -> bool:
    if latitude is None or longitude is None or not in_range(latitude, longitude):
        return False
    return not is_missing_coordinate(latitude, longitude)


def validate_coordinate(coordinate: Coordinate, *, label: str, reject_missing: bool = True) -> None:
    """Raise ``InvalidCoordinateError`` for out-of-range or unset coordinates."""

    latitude, longitude = coordinate
    if latitude is None or longitude is None or not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise InvalidCoordinateError(f"{label} has no coordinates.")
    if not in_range(latitude, longitude):
        raise InvalidCoordinateError(
            f"{label} coordinate ({latitude}, {longitude}) is outside the valid latitude/longitude range."
        )
    if reject_missing and is_missing_coordinate(latitude, longitude):
        raise InvalidCoordinateError(f"{label} coordinate ({latitude}, {longitude}) is an unset placeholder.")
