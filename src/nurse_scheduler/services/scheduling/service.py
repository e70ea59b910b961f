"""Schedule orchestration: visits -> ordered tour -> road route -> stored schedule."""

from __future__ import annotations

import functools
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Sequence

from ...cancellation import CancelToken
from ...config import settings
from ...errors import InvalidCoordinateError, UnknownWorkerError
from ...models.domain import Coordinate, Schedule, ScheduleStatus, Stop, Worker
from ...schemas.schedules import ScheduleRequest
from ..geospatial import in_range, is_missing_coordinate, is_usable_coordinate
from ..routing.oracle import DistanceOracle, build_distance_oracle
from ..routing.route_assembler import RouteAssembler
from ..routing.tour_builder import build_tour
from .providers import VisitProvider, WorkerLocationProvider
from .store import InMemoryScheduleStore, ScheduleStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PrecomputeReport:
    schedule_date: date
    generated: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class ScheduleService:
    """Entry point for generating and caching daily worker schedules."""

    def __init__(
        self,
        store: ScheduleStore,
        workers: WorkerLocationProvider,
        visits: VisitProvider,
        oracle: DistanceOracle | None = None,
        *,
        assembler: RouteAssembler | None = None,
        default_home: Coordinate | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.workers = workers
        self.visits = visits
        self.oracle = oracle
        self.assembler = assembler or RouteAssembler(oracle)
        self.default_home = default_home or (settings.default_home_latitude, settings.default_home_longitude)
        self.today = today

    def handle(self, request: ScheduleRequest) -> Schedule:
        if request.force_regenerate:
            return self.regenerate(request.worker_id, request.date, timeout_seconds=request.timeout_seconds)
        return self.get_or_generate(request.worker_id, request.date, timeout_seconds=request.timeout_seconds)

    def get_or_generate(
        self,
        worker_id: str,
        schedule_date: date,
        *,
        timeout_seconds: float | None = None,
        cancel: CancelToken | None = None,
    ) -> Schedule:
        token = cancel or CancelToken.with_timeout(timeout_seconds)
        return self.store.get_or_compute(
            worker_id, schedule_date, lambda: self.generate(worker_id, schedule_date, cancel=token), token
        )

    def regenerate(
        self,
        worker_id: str,
        schedule_date: date,
        *,
        timeout_seconds: float | None = None,
        cancel: CancelToken | None = None,
    ) -> Schedule:
        token = cancel or CancelToken.with_timeout(timeout_seconds)
        logger.info(f"Forcing schedule regeneration for worker {worker_id} on {schedule_date}")
        return self.store.replace_with(
            worker_id, schedule_date, lambda: self.generate(worker_id, schedule_date, cancel=token), token
        )

    def generate(self, worker_id: str, schedule_date: date, *, cancel: CancelToken | None = None) -> Schedule:
        """Compute a schedule without touching the store."""

        token = cancel or CancelToken()
        worker = self.workers.get_worker(worker_id)
        if worker is None:
            raise UnknownWorkerError(worker_id)

        home = self._resolve_home(worker)
        stops, skipped = self._resolve_stops(worker_id, schedule_date)
        token.raise_if_cancelled()

        if not stops:
            logger.info(f"No routable visits for worker {worker_id} on {schedule_date}, creating empty schedule")
            return Schedule(
                worker_id=worker_id,
                schedule_date=schedule_date,
                tour=(),
                route_coordinates=(),
                total_distance_m=0.0,
                total_travel_time_min=0,
                status=ScheduleStatus.EMPTY,
                generated_on=self.today(),
                routing_source="empty",
                skipped_client_ids=tuple(skipped),
            )

        tour = build_tour(home, stops, self.oracle)
        token.raise_if_cancelled()

        by_id = {stop.stop_id: stop for stop in stops}
        ordered = [by_id[stop_id] for stop_id in tour]
        route = self.assembler.assemble(home, ordered, cancel=token)
        token.raise_if_cancelled()

        logger.info(
            f"Generated schedule for worker {worker_id} on {schedule_date}: {len(tour)} visits, "
            f"{route.distance_m:.0f} m, {route.travel_time_min} min travel ({route.source})"
        )
        return Schedule(
            worker_id=worker_id,
            schedule_date=schedule_date,
            tour=tuple(tour),
            route_coordinates=tuple(route.path),
            total_distance_m=route.distance_m,
            total_travel_time_min=route.travel_time_min,
            status=ScheduleStatus.GENERATED,
            generated_on=self.today(),
            routing_source=route.source,
            total_service_minutes=sum(stop.service_minutes for stop in ordered),
            skipped_client_ids=tuple(skipped),
        )

    def precompute_all(
        self,
        schedule_date: date | None = None,
        *,
        force: bool = False,
        max_workers: int | None = None,
    ) -> PrecomputeReport:
        """Populate the store for every known worker.

        One worker's failure is logged and reported but never stops the others.
        """
        target_date = schedule_date or self.today()
        report = PrecomputeReport(schedule_date=target_date)
        workers = list(self.workers.list_workers())
        if not workers:
            logger.info(f"No workers to precompute schedules for on {target_date}")
            return report

        run = self.regenerate if force else self.get_or_generate
        with ThreadPoolExecutor(
            max_workers=max_workers or settings.precompute_max_workers,
            thread_name_prefix="schedule-precompute",
        ) as executor:
            futures = {executor.submit(run, worker.worker_id, target_date): worker for worker in workers}
            for future in as_completed(futures):
                worker = futures[future]
                try:
                    schedule = future.result()
                except Exception as exc:
                    logger.exception(f"Error generating schedule for worker {worker.worker_id} ({worker.name}): {exc}")
                    report.failed[worker.worker_id] = str(exc)
                    continue
                report.generated.append(worker.worker_id)
                logger.debug(f"Precomputed schedule for {worker.worker_id} with {len(schedule.tour)} visits")

        report.generated.sort()
        logger.info(
            f"Precomputed schedules for {target_date}: {len(report.generated)} generated, {len(report.failed)} failed"
        )
        return report

    def _resolve_home(self, worker: Worker) -> Coordinate:
        if is_missing_coordinate(worker.latitude, worker.longitude):
            logger.warning(
                f"Worker {worker.worker_id} has no home coordinates. Using default location {self.default_home}."
            )
            return self.default_home
        if not in_range(worker.latitude, worker.longitude):
            raise InvalidCoordinateError(
                f"Worker {worker.worker_id} home ({worker.latitude}, {worker.longitude}) is outside the valid range."
            )
        return (worker.latitude, worker.longitude)

    def _resolve_stops(self, worker_id: str, schedule_date: date) -> tuple[list[Stop], list[str]]:
        stops: list[Stop] = []
        skipped: list[str] = []
        seen: set[str] = set()
        for visit in self.visits.visits_for(worker_id, schedule_date):
            if visit.client_id in seen:
                logger.warning(f"Client {visit.client_id} has more than one visit for {worker_id} on {schedule_date}, keeping the first")
                continue
            seen.add(visit.client_id)
            if not is_usable_coordinate(visit.latitude, visit.longitude):
                logger.warning(f"Client {visit.client_id} has no usable coordinates, leaving it out of the route")
                skipped.append(visit.client_id)
                continue
            stops.append(
                Stop(
                    stop_id=visit.client_id,
                    latitude=visit.latitude,
                    longitude=visit.longitude,
                    service_minutes=visit.service_minutes,
                )
            )
        return stops, skipped


def build_schedule_store() -> ScheduleStore:
    if settings.schedule_store == "supabase":
        from ...persistence.schedules import SupabaseScheduleStore

        return SupabaseScheduleStore()
    return InMemoryScheduleStore()


@functools.lru_cache(maxsize=1)
def get_schedule_service() -> ScheduleService:
    """Process-wide service wired to the configured store, data and routing backend."""
    from ...data.visits_repository import VisitRepository
    from ...data.workers_repository import WorkerRepository

    return ScheduleService(
        store=build_schedule_store(),
        workers=WorkerRepository(),
        visits=VisitRepository(),
        oracle=build_distance_oracle(),
    )


def precompute_today() -> PrecomputeReport:
    return get_schedule_service().precompute_all()
