"""Schedule endpoints."""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, TypeVar

from fastapi import APIRouter, HTTPException, Query, status

from ...errors import ScheduleCancelledError, ScheduleInputError, UnknownWorkerError
from ...schemas.schedules import ScheduleListResponse, ScheduleModel, ScheduleRequest, WorkflowStatusUpdate
from ...services.scheduling.service import get_schedule_service

router = APIRouter(prefix="/schedules", tags=["schedules"])

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _call_service(action: Callable[[], T], failure: str) -> T:
    try:
        return action()
    except UnknownWorkerError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ScheduleInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ScheduleCancelledError as exc:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc)) from exc
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception(f"{failure}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{failure}: {str(exc)}",
        ) from exc


@router.get("", response_model=ScheduleListResponse, status_code=status.HTTP_200_OK)
def list_schedules_for_date(
    schedule_date: date = Query(..., alias="date", description="Schedule date (ISO format)"),
) -> ScheduleListResponse:
    """All stored schedules for one date."""
    schedules = _call_service(
        lambda: get_schedule_service().store.list_for_date(schedule_date),
        "Failed to load schedules",
    )
    return ScheduleListResponse(schedules=[ScheduleModel.from_schedule(s) for s in schedules])


@router.get("/{worker_id}", response_model=ScheduleModel, status_code=status.HTTP_200_OK)
def get_schedule(
    worker_id: str,
    schedule_date: date = Query(..., alias="date", description="Schedule date (ISO format)"),
    force: bool = Query(default=False, description="Recompute even when a schedule is cached"),
    timeout_seconds: float | None = Query(default=None, gt=0),
) -> ScheduleModel:
    """Return the cached schedule for the worker/date, generating it on first request."""
    request = ScheduleRequest(
        worker_id=worker_id,
        date=schedule_date,
        force_regenerate=force,
        timeout_seconds=timeout_seconds,
    )
    schedule = _call_service(lambda: get_schedule_service().handle(request), "Failed to get schedule")
    return ScheduleModel.from_schedule(schedule)


@router.post("/{worker_id}/generate", response_model=ScheduleModel, status_code=status.HTTP_200_OK)
def generate_schedule(
    worker_id: str,
    schedule_date: date = Query(..., alias="date", description="Schedule date (ISO format)"),
    timeout_seconds: float | None = Query(default=None, gt=0),
) -> ScheduleModel:
    """Regenerate the schedule even if one already exists."""
    schedule = _call_service(
        lambda: get_schedule_service().regenerate(worker_id, schedule_date, timeout_seconds=timeout_seconds),
        "Failed to generate schedule",
    )
    return ScheduleModel.from_schedule(schedule)


@router.get("/{worker_id}/range", response_model=ScheduleListResponse, status_code=status.HTTP_200_OK)
def list_schedules_for_worker(
    worker_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> ScheduleListResponse:
    if end_date < start_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date must not be before start_date")
    schedules = _call_service(
        lambda: get_schedule_service().store.list_for_worker(worker_id, start_date, end_date),
        "Failed to load schedules",
    )
    return ScheduleListResponse(schedules=[ScheduleModel.from_schedule(s) for s in schedules])


@router.put("/{worker_id}/status", response_model=ScheduleModel, status_code=status.HTTP_200_OK)
def update_schedule_status(
    worker_id: str,
    payload: WorkflowStatusUpdate,
    schedule_date: date = Query(..., alias="date", description="Schedule date (ISO format)"),
) -> ScheduleModel:
    """Advance the field workflow status of an existing schedule."""
    updated = _call_service(
        lambda: get_schedule_service().store.update_workflow_status(worker_id, schedule_date, payload.status),
        "Failed to update schedule status",
    )
    if updated is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No schedule for worker {worker_id} on {schedule_date}",
        )
    return ScheduleModel.from_schedule(updated)
