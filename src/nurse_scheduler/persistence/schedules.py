"""Supabase-backed schedule persistence."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from ..db.supabase import get_supabase_client
from ..models.domain import Schedule, ScheduleStatus, WorkflowStatus
from ..services.scheduling.store import ScheduleStore

SCHEDULES_TABLE = "worker_schedules"

logger = logging.getLogger(__name__)


def schedule_to_record(schedule: Schedule) -> dict[str, Any]:
    return {
        "worker_id": schedule.worker_id,
        "schedule_date": schedule.schedule_date.isoformat(),
        "tour": list(schedule.tour),
        "route_coordinates": [[lat, lon] for lat, lon in schedule.route_coordinates],
        "total_distance_m": schedule.total_distance_m,
        "total_travel_time_min": schedule.total_travel_time_min,
        "status": schedule.status.value,
        "generated_on": schedule.generated_on.isoformat(),
        "routing_source": schedule.routing_source,
        "total_service_minutes": schedule.total_service_minutes,
        "skipped_client_ids": list(schedule.skipped_client_ids),
        "workflow_status": schedule.workflow_status.value,
    }


def record_to_schedule(row: dict[str, Any]) -> Schedule:
    return Schedule(
        worker_id=str(row["worker_id"]),
        schedule_date=date.fromisoformat(str(row["schedule_date"])),
        tour=tuple(str(stop_id) for stop_id in row.get("tour") or []),
        route_coordinates=tuple((float(lat), float(lon)) for lat, lon in row.get("route_coordinates") or []),
        total_distance_m=float(row.get("total_distance_m") or 0.0),
        total_travel_time_min=int(row.get("total_travel_time_min") or 0),
        status=ScheduleStatus(row["status"]),
        generated_on=date.fromisoformat(str(row["generated_on"])),
        routing_source=row.get("routing_source") or "empty",
        total_service_minutes=int(row.get("total_service_minutes") or 0),
        skipped_client_ids=tuple(row.get("skipped_client_ids") or []),
        workflow_status=WorkflowStatus(row.get("workflow_status") or WorkflowStatus.DRAFT.value),
    )


class SupabaseScheduleStore(ScheduleStore):
    """Schedules persisted in the ``worker_schedules`` table.

    The table carries a unique constraint on (worker_id, schedule_date); writes
    are upserts on that pair so regeneration overwrites in place.
    """

    def __init__(self, client=None) -> None:
        super().__init__()
        self.client = client or get_supabase_client()
        if self.client is None:
            raise ValueError(
                "Supabase is not configured. Set NURSE_SUPABASE_URL and NURSE_SUPABASE_KEY "
                "or use NURSE_SCHEDULE_STORE=memory."
            )

    def get(self, worker_id: str, schedule_date: date) -> Schedule | None:
        response = (
            self.client.table(SCHEDULES_TABLE)
            .select("*")
            .eq("worker_id", worker_id)
            .eq("schedule_date", schedule_date.isoformat())
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return record_to_schedule(rows[0]) if rows else None

    def put(self, worker_id: str, schedule_date: date, schedule: Schedule) -> None:
        record = schedule_to_record(schedule)
        record["worker_id"] = worker_id
        record["schedule_date"] = schedule_date.isoformat()
        self.client.table(SCHEDULES_TABLE).upsert(record, on_conflict="worker_id,schedule_date").execute()
        logger.info(f"Persisted schedule for worker {worker_id} on {schedule_date}")

    def list_for_worker(self, worker_id: str, start: date, end: date) -> list[Schedule]:
        response = (
            self.client.table(SCHEDULES_TABLE)
            .select("*")
            .eq("worker_id", worker_id)
            .gte("schedule_date", start.isoformat())
            .lte("schedule_date", end.isoformat())
            .order("schedule_date")
            .execute()
        )
        return [record_to_schedule(row) for row in response.data or []]

    def list_for_date(self, schedule_date: date) -> list[Schedule]:
        response = (
            self.client.table(SCHEDULES_TABLE)
            .select("*")
            .eq("schedule_date", schedule_date.isoformat())
            .order("worker_id")
            .execute()
        )
        return [record_to_schedule(row) for row in response.data or []]
