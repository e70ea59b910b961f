"""Distance oracle contract and factory."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from ...config import settings
from ...models.domain import Coordinate
from .models import RouteLeg

logger = logging.getLogger(__name__)


class DistanceOracle(Protocol):
    """Road-routing capability.

    ``leg`` returns the road path from ``origin`` to ``destination`` (both
    included) and its length in meters. ``matrix`` returns pairwise road
    distances in meters, ``None`` where a pair is unreachable. Both raise
    ``RoutingBackendError`` on any backend failure and never retry.
    """

    def leg(self, origin: Coordinate, destination: Coordinate) -> RouteLeg:
        ...

    def matrix(self, coordinates: Sequence[Coordinate]) -> list[list[float | None]]:
        ...


def build_distance_oracle() -> DistanceOracle | None:
    """Return the configured routing backend, or None when none is configured."""

    if not settings.osrm_base_url:
        logger.info("No routing backend configured, schedules will use straight-line estimates")
        return None
    from .osrm_client import OSRMClient

    return OSRMClient()
