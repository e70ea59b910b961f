"""Schedule request/response schemas."""

from __future__ import annotations

import datetime
from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.domain import Schedule, ScheduleStatus, WorkflowStatus


class ScheduleRequest(BaseModel):
    worker_id: str = Field(..., min_length=1)
    date: datetime.date
    force_regenerate: bool = False
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


class WorkflowStatusUpdate(BaseModel):
    status: WorkflowStatus


class ScheduleModel(BaseModel):
    worker_id: str
    schedule_date: date
    tour: List[str]
    route_coordinates: List[List[float]]
    total_distance_m: float
    total_travel_time_min: int
    status: ScheduleStatus
    generated_on: date
    routing_source: str
    total_service_minutes: int
    skipped_client_ids: List[str]
    workflow_status: WorkflowStatus

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> "ScheduleModel":
        return cls(
            worker_id=schedule.worker_id,
            schedule_date=schedule.schedule_date,
            tour=list(schedule.tour),
            route_coordinates=[[lat, lon] for lat, lon in schedule.route_coordinates],
            total_distance_m=schedule.total_distance_m,
            total_travel_time_min=schedule.total_travel_time_min,
            status=schedule.status,
            generated_on=schedule.generated_on,
            routing_source=schedule.routing_source,
            total_service_minutes=schedule.total_service_minutes,
            skipped_client_ids=list(schedule.skipped_client_ids),
            workflow_status=schedule.workflow_status,
        )


class ScheduleListResponse(BaseModel):
    schedules: List[ScheduleModel]


class PrecomputeResponse(BaseModel):
    schedule_date: date
    generated: List[str]
    failed: Dict[str, str]
