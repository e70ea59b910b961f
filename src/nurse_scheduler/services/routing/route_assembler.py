"""Road geometry for an ordered tour, with a whole-route straight-line fallback."""

from __future__ import annotations

import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Sequence

from ...cancellation import CancelToken
from ...config import settings
from ...models.domain import Coordinate, Stop
from ..geospatial import proxy_distance_m, validate_coordinate
from .models import RouteGeometry, RouteLeg
from .oracle import DistanceOracle

logger = logging.getLogger(__name__)

# How often a cancellable gather wakes up to check the token.
_CANCEL_POLL_SECONDS = 0.05


def travel_time_minutes(distance_m: float, speed_kmh: float | None = None) -> int:
    speed = speed_kmh or settings.assumed_speed_kmh
    return int(math.floor(distance_m / 1000.0 / speed * 60.0))


class RouteAssembler:
    """Turn depot + ordered stops into one closed RouteGeometry.

    Legs are requested depot -> stop_1 -> ... -> stop_n -> depot. If any leg
    fails, every oracle result for the route is discarded and the whole route
    is rebuilt from straight lines, so a route never mixes road and estimated
    segments.
    """

    def __init__(
        self,
        oracle: DistanceOracle | None,
        *,
        max_parallel_legs: int | None = None,
        speed_kmh: float | None = None,
        reject_missing: bool = True,
    ) -> None:
        self.oracle = oracle
        self.max_parallel_legs = max_parallel_legs or settings.route_leg_parallelism
        self.speed_kmh = speed_kmh or settings.assumed_speed_kmh
        self.reject_missing = reject_missing

    def assemble(
        self,
        depot: Coordinate,
        stops: Sequence[Stop],
        cancel: CancelToken | None = None,
    ) -> RouteGeometry:
        validate_coordinate(depot, label="Depot", reject_missing=self.reject_missing)
        for stop in stops:
            validate_coordinate(stop.coordinate, label=f"Stop {stop.stop_id}", reject_missing=self.reject_missing)

        if not stops:
            return RouteGeometry(path=[], distance_m=0.0, travel_time_min=0, leg_distances_m=[], source="empty")

        points = [depot, *(stop.coordinate for stop in stops), depot]
        pairs = list(zip(points, points[1:]))

        if self.oracle is None:
            return self._fallback(pairs)

        legs = self._request_legs(pairs, cancel)
        failed = [index for index, leg in enumerate(legs) if leg is None]
        if failed:
            logger.warning(
                f"{len(failed)} of {len(pairs)} route legs failed (first failure at leg {failed[0] + 1}). "
                f"Rebuilding the whole route from straight-line estimates."
            )
            return self._fallback(pairs)

        return self._combine(
            [leg.path for leg in legs],
            [leg.distance_m for leg in legs],
            source="road",
        )

    def _request_legs(
        self,
        pairs: list[tuple[Coordinate, Coordinate]],
        cancel: CancelToken | None,
    ) -> list[RouteLeg | None]:
        """Request every leg, then report each outcome in tour order.

        Nothing is decided until all legs have finished.
        """
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_parallel_legs, len(pairs)),
            thread_name_prefix="route-leg",
        )
        try:
            futures: list[Future] = [executor.submit(self.oracle.leg, origin, destination) for origin, destination in pairs]
            pending = set(futures)
            while pending:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                timeout = _CANCEL_POLL_SECONDS if cancel is not None else None
                _, pending = wait(pending, timeout=timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        outcomes: list[RouteLeg | None] = []
        for index, future in enumerate(futures):
            try:
                outcomes.append(future.result())
            except Exception as exc:
                logger.warning(f"Route leg {index + 1}/{len(pairs)} failed: {exc}")
                outcomes.append(None)
        return outcomes

    def _fallback(self, pairs: list[tuple[Coordinate, Coordinate]]) -> RouteGeometry:
        return self._combine(
            [[origin, destination] for origin, destination in pairs],
            [proxy_distance_m(origin, destination) for origin, destination in pairs],
            source="fallback",
        )

    def _combine(self, paths: list[list[Coordinate]], distances: list[float], *, source: str) -> RouteGeometry:
        route_path: list[Coordinate] = []
        for leg_path in paths:
            if route_path and leg_path and route_path[-1] == leg_path[0]:
                route_path.extend(leg_path[1:])
            else:
                route_path.extend(leg_path)
        total = float(sum(distances))
        return RouteGeometry(
            path=route_path,
            distance_m=total,
            travel_time_min=travel_time_minutes(total, self.speed_kmh),
            leg_distances_m=list(distances),
            source=source,
        )
