"""Bulk schedule initialization endpoints."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query, status

from ...schemas.schedules import PrecomputeResponse
from ...services.scheduling.service import get_schedule_service

router = APIRouter(prefix="/init", tags=["init"])

logger = logging.getLogger(__name__)


def _precompute(schedule_date: date | None, force: bool) -> PrecomputeResponse:
    try:
        report = get_schedule_service().precompute_all(schedule_date, force=force)
    except Exception as exc:
        logger.exception(f"Error precomputing schedules: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to precompute schedules: {str(exc)}",
        ) from exc
    return PrecomputeResponse(
        schedule_date=report.schedule_date,
        generated=report.generated,
        failed=report.failed,
    )


@router.post("/schedules/today", response_model=PrecomputeResponse, status_code=status.HTTP_200_OK)
def precompute_today(force: bool = Query(default=False)) -> PrecomputeResponse:
    """Generate today's schedules for every worker."""
    return _precompute(None, force)


@router.post("/schedules", response_model=PrecomputeResponse, status_code=status.HTTP_200_OK)
def precompute_for_date(
    schedule_date: date = Query(..., alias="date", description="Schedule date (ISO format)"),
    force: bool = Query(default=False),
) -> PrecomputeResponse:
    return _precompute(schedule_date, force)
