"""FastAPI application entry point."""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import health, init, schedules
from .config import settings

logger = logging.getLogger(__name__)


def _precompute_in_background() -> None:
    from .services.scheduling.service import precompute_today

    try:
        precompute_today()
    except Exception as exc:
        # Workers could not even be listed; the API keeps serving on-demand schedules
        logger.exception(f"Startup schedule precompute failed: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.precompute_on_startup:
        logger.info("Precomputing today's schedules in the background")
        threading.Thread(target=_precompute_in_background, name="startup-precompute", daemon=True).start()
    yield


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(schedules.router, prefix=settings.api_prefix)
    app.include_router(init.router, prefix=settings.api_prefix)
    return app


app = create_app()
