"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from ...models.domain import Coordinate


@dataclass(slots=True)
class RouteLeg:
    """Road path between two consecutive points, endpoints included."""

    path: List[Coordinate]
    distance_m: float


@dataclass(slots=True)
class RouteGeometry:
    path: List[Coordinate]
    distance_m: float
    travel_time_min: int
    leg_distances_m: List[float]
    source: str  # "road", "fallback" or "empty"
