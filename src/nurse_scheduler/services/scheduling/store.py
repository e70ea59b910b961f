"""Schedule cache/persistence contract with single-flight computation."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from typing import Callable, Iterator

from ...cancellation import CancelToken
from ...models.domain import Schedule, WorkflowStatus

logger = logging.getLogger(__name__)

ScheduleKey = tuple[str, date]


class ScheduleStore(ABC):
    """Owns persisted schedules keyed by (worker_id, date).

    Subclasses provide storage; ``get_or_compute`` is implemented here once so
    every backing gets the same single-flight guarantee: concurrent callers for
    one key share a single computation while other keys proceed in parallel.
    """

    def __init__(self) -> None:
        self._locks_guard = threading.Lock()
        self._key_locks: dict[ScheduleKey, list] = {}

    @abstractmethod
    def get(self, worker_id: str, schedule_date: date) -> Schedule | None:
        raise NotImplementedError

    @abstractmethod
    def put(self, worker_id: str, schedule_date: date, schedule: Schedule) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_for_worker(self, worker_id: str, start: date, end: date) -> list[Schedule]:
        raise NotImplementedError

    @abstractmethod
    def list_for_date(self, schedule_date: date) -> list[Schedule]:
        raise NotImplementedError

    def update_workflow_status(self, worker_id: str, schedule_date: date, status: WorkflowStatus) -> Schedule | None:
        """Advance the workflow status; the generated content stays untouched."""

        with self._key_lock((worker_id, schedule_date)):
            current = self.get(worker_id, schedule_date)
            if current is None:
                return None
            updated = replace(current, workflow_status=status)
            self.put(worker_id, schedule_date, updated)
            return updated

    def get_or_compute(
        self,
        worker_id: str,
        schedule_date: date,
        compute: Callable[[], Schedule],
        cancel: CancelToken | None = None,
    ) -> Schedule:
        """Return the stored schedule, computing and storing it on a miss.

        A caller waiting behind another computation of the same key gives up
        with ``ScheduleCancelledError`` once ``cancel`` fires.
        """
        cached = self.get(worker_id, schedule_date)
        if cached is not None:
            return cached

        with self._key_lock((worker_id, schedule_date), cancel):
            # Another caller may have finished while we waited for the lock
            cached = self.get(worker_id, schedule_date)
            if cached is not None:
                logger.debug(f"Schedule for {worker_id} on {schedule_date} computed by a concurrent request")
                return cached
            schedule = compute()
            self.put(worker_id, schedule_date, schedule)
            return schedule

    def replace_with(
        self,
        worker_id: str,
        schedule_date: date,
        compute: Callable[[], Schedule],
        cancel: CancelToken | None = None,
    ) -> Schedule:
        """Always compute and overwrite, serialized with other writers of the key."""

        with self._key_lock((worker_id, schedule_date), cancel):
            schedule = compute()
            self.put(worker_id, schedule_date, schedule)
            return schedule

    @contextmanager
    def _key_lock(self, key: ScheduleKey, cancel: CancelToken | None = None) -> Iterator[None]:
        with self._locks_guard:
            entry = self._key_locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._key_locks[key] = entry
            entry[1] += 1
        lock = entry[0]
        try:
            if cancel is None:
                lock.acquire()
            else:
                cancel.acquire(lock)
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._key_locks.pop(key, None)


class InMemoryScheduleStore(ScheduleStore):
    """Process-local store, used for tests and single-instance deployments."""

    def __init__(self) -> None:
        super().__init__()
        self._data: dict[ScheduleKey, Schedule] = {}
        self._data_lock = threading.Lock()

    def get(self, worker_id: str, schedule_date: date) -> Schedule | None:
        with self._data_lock:
            return self._data.get((worker_id, schedule_date))

    def put(self, worker_id: str, schedule_date: date, schedule: Schedule) -> None:
        with self._data_lock:
            self._data[(worker_id, schedule_date)] = schedule

    def list_for_worker(self, worker_id: str, start: date, end: date) -> list[Schedule]:
        with self._data_lock:
            matches = [
                schedule
                for (key_worker, key_date), schedule in self._data.items()
                if key_worker == worker_id and start <= key_date <= end
            ]
        return sorted(matches, key=lambda schedule: schedule.schedule_date)

    def list_for_date(self, schedule_date: date) -> list[Schedule]:
        with self._data_lock:
            matches = [schedule for (_, key_date), schedule in self._data.items() if key_date == schedule_date]
        return sorted(matches, key=lambda schedule: schedule.worker_id)

    def __len__(self) -> int:
        with self._data_lock:
            return len(self._data)
