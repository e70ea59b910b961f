"""Read-only collaborators the scheduler depends on."""

from __future__ import annotations

from datetime import date
from typing import Protocol, Sequence

from ...models.domain import Visit, Worker


class WorkerLocationProvider(Protocol):
    def get_worker(self, worker_id: str) -> Worker | None:
        ...

    def list_workers(self) -> Sequence[Worker]:
        ...


class VisitProvider(Protocol):
    def visits_for(self, worker_id: str, visit_date: date) -> Sequence[Visit]:
        ...
