"""OR-Tools visit-order optimization for a single worker's daily tour.

The tour is a closed single-vehicle route: home -> every stop -> home. The
solver only decides the order; road geometry is assembled afterwards.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from ortools.constraint_solver import pywrapcp, routing_enums_pb2

from ...config import settings
from ...errors import RoutingBackendError
from ...models.domain import Coordinate, Stop
from .oracle import DistanceOracle

logger = logging.getLogger(__name__)


def proxy_matrix(points: Sequence[Coordinate]) -> np.ndarray:
    """Pairwise planar degree distance scaled to meters."""

    coords = np.asarray(points, dtype=float).reshape(-1, 2)
    deltas = coords[:, None, :] - coords[None, :, :]
    return np.hypot(deltas[..., 0], deltas[..., 1]) * settings.meters_per_degree


def cost_matrix(
    depot: Coordinate,
    stops: Sequence[Stop],
    oracle: DistanceOracle | None = None,
) -> np.ndarray:
    """Cost matrix with the depot at index 0 and stops at 1..n.

    Road distances are used when a routing backend is available and the stop
    count is small enough for one table request; otherwise the proxy matrix.
    """
    points = [depot, *(stop.coordinate for stop in stops)]
    if oracle is None or len(stops) > settings.matrix_stop_threshold:
        return proxy_matrix(points)

    try:
        road = oracle.matrix(points)
    except (RoutingBackendError, ValueError) as exc:
        logger.warning(f"Distance table request failed: {exc}. Using straight-line costs for ordering.")
        return proxy_matrix(points)

    if any(value is None for row in road for value in row):
        logger.warning("Distance table has unreachable pairs. Using straight-line costs for ordering.")
        return proxy_matrix(points)
    return np.asarray(road, dtype=float)


def _solve(cost: np.ndarray, *, time_limit_seconds: int, solution_limit: int) -> list[int]:
    """Return stop node indices (1..n) in visiting order."""

    arc_costs = np.rint(cost).astype(np.int64).tolist()
    manager = pywrapcp.RoutingIndexManager(len(arc_costs), 1, 0)
    routing = pywrapcp.RoutingModel(manager)

    def distance_callback(from_index: int, to_index: int) -> int:
        from_node = manager.IndexToNode(from_index)
        to_node = manager.IndexToNode(to_index)
        return arc_costs[from_node][to_node]

    transit_callback_index = routing.RegisterTransitCallback(distance_callback)
    routing.SetArcCostEvaluatorOfAllVehicles(transit_callback_index)

    search_parameters = pywrapcp.DefaultRoutingSearchParameters()
    search_parameters.first_solution_strategy = getattr(
        routing_enums_pb2.FirstSolutionStrategy, settings.solver_first_solution_strategy
    )
    search_parameters.local_search_metaheuristic = getattr(
        routing_enums_pb2.LocalSearchMetaheuristic, settings.solver_local_search_metaheuristic
    )
    search_parameters.time_limit.FromSeconds(time_limit_seconds)
    search_parameters.solution_limit = solution_limit

    assignment = routing.SolveWithParameters(search_parameters)
    if not assignment:
        raise RuntimeError(f"Solver returned no assignment (status {routing.status()})")

    order: list[int] = []
    index = assignment.Value(routing.NextVar(routing.Start(0)))
    while not routing.IsEnd(index):
        order.append(manager.IndexToNode(index))
        index = assignment.Value(routing.NextVar(index))
    return order


def build_tour(
    depot: Coordinate,
    stops: Sequence[Stop],
    oracle: DistanceOracle | None = None,
    *,
    time_limit_seconds: int | None = None,
    solution_limit: int | None = None,
) -> list[str]:
    """Order stops around the depot to approximately minimize total travel.

    Always returns a permutation of the stop ids. Stops are presented to the
    solver sorted by id so identical inputs give identical tours and exact
    ties resolve to the lowest id. If the solver fails for any reason the
    input order is returned instead.
    """
    stop_ids = [stop.stop_id for stop in stops]
    if len(set(stop_ids)) != len(stop_ids):
        raise ValueError("Stop ids must be unique within one tour.")
    if len(stops) <= 1:
        return stop_ids

    ordered = sorted(stops, key=lambda stop: stop.stop_id)
    try:
        matrix = cost_matrix(depot, ordered, oracle)
        nodes = _solve(
            matrix,
            time_limit_seconds=time_limit_seconds or settings.solver_time_limit_seconds,
            solution_limit=solution_limit or settings.solver_solution_limit,
        )
        tour = [ordered[node - 1].stop_id for node in nodes]
    except Exception as exc:
        logger.warning(f"Tour optimization failed for {len(stops)} stops: {exc}. Keeping input order.")
        return stop_ids

    if sorted(tour) != sorted(stop_ids):
        logger.warning(f"Solver returned an invalid visiting order for {len(stops)} stops. Keeping input order.")
        return stop_ids
    return tour
