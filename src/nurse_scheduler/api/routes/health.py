"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/routing", status_code=status.HTTP_200_OK)
def health_routing() -> dict:
    """Check the road-routing backend; schedules still generate when it is down."""
    if not settings.osrm_base_url:
        return {"service": "osrm", "configured": False, "healthy": False}

    from ...services.routing.osrm_client import check_health

    return {"service": "osrm", "configured": True, "healthy": check_health()}
