import math
import random

import pytest

from src.nurse_scheduler.config import settings
from src.nurse_scheduler.errors import RoutingBackendError
from src.nurse_scheduler.models.domain import Stop
from src.nurse_scheduler.services.geospatial import proxy_distance_m
from src.nurse_scheduler.services.routing import tour_builder
from src.nurse_scheduler.services.routing.tour_builder import build_tour, cost_matrix

DEPOT = (33.9137, -98.4934)


def _stops(count: int, seed: int = 7) -> list[Stop]:
    rng = random.Random(seed)
    return [
        Stop(
            stop_id=f"C{index:04d}",
            latitude=DEPOT[0] + rng.uniform(-0.2, 0.2),
            longitude=DEPOT[1] + rng.uniform(-0.2, 0.2),
        )
        for index in range(count)
    ]


def _tour_length(depot, stops, tour) -> float:
    by_id = {stop.stop_id: stop for stop in stops}
    path = [depot, *(by_id[stop_id].coordinate for stop_id in tour), depot]
    return sum(proxy_distance_m(a, b) for a, b in zip(path, path[1:]))


class MatrixOracle:
    def __init__(self, fail: bool = False, unreachable: bool = False):
        self.fail = fail
        self.unreachable = unreachable
        self.matrix_calls = 0

    def leg(self, origin, destination):
        raise AssertionError("tour building never requests legs")

    def matrix(self, coordinates):
        self.matrix_calls += 1
        if self.fail:
            raise RoutingBackendError("table unavailable")
        rows = [
            [math.hypot(a[0] - b[0], a[1] - b[1]) * 111_320 for b in coordinates]
            for a in coordinates
        ]
        if self.unreachable:
            rows[0][1] = None
        return rows


def test_empty_and_single_stop_tours():
    assert build_tour(DEPOT, []) == []
    assert build_tour(DEPOT, [Stop("only", 33.95, -98.45)]) == ["only"]


@pytest.mark.parametrize("count", [2, 3, 10, 50, 200, 500])
def test_tour_is_permutation_of_stops(count):
    stops = _stops(count)

    tour = build_tour(DEPOT, stops, time_limit_seconds=2, solution_limit=50)

    assert sorted(tour) == sorted(stop.stop_id for stop in stops)
    assert len(tour) == len(set(tour))


def test_tour_is_deterministic_regardless_of_input_order():
    stops = _stops(30)
    shuffled = list(stops)
    random.Random(3).shuffle(shuffled)

    first = build_tour(DEPOT, stops, time_limit_seconds=2, solution_limit=200)
    second = build_tour(DEPOT, stops, time_limit_seconds=2, solution_limit=200)
    third = build_tour(DEPOT, shuffled, time_limit_seconds=2, solution_limit=200)

    assert first == second == third


def test_tour_is_not_worse_than_input_order_on_a_line():
    # Stops on a straight road, presented in a zig-zag order
    stops = [
        Stop("A", 34.0, -98.4934),
        Stop("B", 34.3, -98.4934),
        Stop("C", 34.1, -98.4934),
        Stop("D", 34.2, -98.4934),
    ]

    tour = build_tour(DEPOT, stops)

    assert _tour_length(DEPOT, stops, tour) <= _tour_length(DEPOT, stops, ["A", "B", "C", "D"])
    assert _tour_length(DEPOT, stops, tour) == pytest.approx(2 * 0.3863 * 111_320, rel=1e-3)


def test_duplicate_stop_ids_are_rejected():
    with pytest.raises(ValueError):
        build_tour(DEPOT, [Stop("A", 34.0, -98.5), Stop("A", 34.1, -98.5)])


def test_solver_failure_keeps_input_order(monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("solver crashed")

    monkeypatch.setattr(tour_builder, "_solve", explode)
    stops = _stops(5)

    assert build_tour(DEPOT, stops) == [stop.stop_id for stop in stops]


def test_invalid_solver_order_keeps_input_order(monkeypatch):
    monkeypatch.setattr(tour_builder, "_solve", lambda *args, **kwargs: [1, 1, 2])
    stops = _stops(3)

    assert build_tour(DEPOT, stops) == [stop.stop_id for stop in stops]


def test_cost_matrix_uses_road_table_for_small_tours():
    oracle = MatrixOracle()
    stops = _stops(4)

    matrix = cost_matrix(DEPOT, stops, oracle)

    assert oracle.matrix_calls == 1
    assert matrix.shape == (5, 5)
    assert tour_builder.proxy_matrix([DEPOT, *(s.coordinate for s in stops)]) == pytest.approx(matrix)


def test_cost_matrix_skips_road_table_above_threshold(monkeypatch):
    monkeypatch.setattr(settings, "matrix_stop_threshold", 3)
    oracle = MatrixOracle()

    matrix = cost_matrix(DEPOT, _stops(4), oracle)

    assert oracle.matrix_calls == 0
    assert matrix.shape == (5, 5)


@pytest.mark.parametrize("oracle", [MatrixOracle(fail=True), MatrixOracle(unreachable=True)])
def test_road_table_problems_fall_back_to_proxy(oracle):
    stops = _stops(6)

    tour = build_tour(DEPOT, stops, oracle)

    assert oracle.matrix_calls == 1
    assert sorted(tour) == sorted(stop.stop_id for stop in stops)
