"""Domain models for workers, visits and generated schedules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

Coordinate = tuple[float, float]
"""A (latitude, longitude) pair in degrees."""


class ScheduleStatus(str, Enum):
    EMPTY = "EMPTY"
    GENERATED = "GENERATED"


class WorkflowStatus(str, Enum):
    """Lifecycle of a schedule once handed to the field workflow."""

    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


@dataclass(slots=True)
class Worker:
    """A mobile worker whose home is the start and end of every daily tour."""

    worker_id: str
    name: str
    latitude: Optional[float]
    longitude: Optional[float]


@dataclass(slots=True)
class Visit:
    """A client visit assigned to a worker on a given day."""

    client_id: str
    latitude: Optional[float]
    longitude: Optional[float]
    service_minutes: int = 0
    appointment_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Stop:
    stop_id: str
    latitude: float
    longitude: float
    service_minutes: int = 0

    @property
    def coordinate(self) -> Coordinate:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class Schedule:
    """Materialized daily schedule for one worker.

    Everything except ``workflow_status`` is fixed once generated; the workflow
    status is advanced by the field workflow, never by schedule generation.
    """

    worker_id: str
    schedule_date: date
    tour: tuple[str, ...]
    route_coordinates: tuple[Coordinate, ...]
    total_distance_m: float
    total_travel_time_min: int
    status: ScheduleStatus
    generated_on: date
    routing_source: str = "empty"
    total_service_minutes: int = 0
    skipped_client_ids: tuple[str, ...] = field(default_factory=tuple)
    workflow_status: WorkflowStatus = WorkflowStatus.DRAFT
