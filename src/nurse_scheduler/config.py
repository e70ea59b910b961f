"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="NURSE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Nurse Route Scheduler API"
    api_prefix: str = "/api"
    workers_file: Path = Field(
        default=Path("data/workers.xlsx"),
        description="Worker roster with home latitude/longitude coordinates.",
    )
    visits_file: Path = Field(
        default=Path("data/visits.csv"),
        description="Visit assignments (worker, client, date, coordinates, duration).",
    )
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv", "car"] = Field(
        default="driving",
        description="OSRM profile used for road paths and distance tables.",
    )
    routing_timeout_seconds: float = Field(default=30.0, gt=0.0)
    routing_max_parallel_requests: int = Field(
        default=8,
        ge=1,
        description="Upper bound on routing requests in flight across the whole process.",
    )
    route_leg_parallelism: int = Field(
        default=4,
        ge=1,
        description="Legs requested concurrently while assembling one route.",
    )
    matrix_stop_threshold: int = Field(
        default=25,
        ge=0,
        description="Largest stop count for which a road distance table is requested.",
    )
    meters_per_degree: float = Field(default=111320.0, gt=0.0)
    assumed_speed_kmh: float = Field(default=50.0, gt=0.0)
    solver_first_solution_strategy: str = Field(default="PATH_CHEAPEST_ARC")
    solver_local_search_metaheuristic: str = Field(default="GREEDY_DESCENT")
    solver_time_limit_seconds: int = Field(default=5, ge=1)
    solver_solution_limit: int = Field(default=2000, ge=1)
    default_home_latitude: float = Field(default=33.9137, ge=-90.0, le=90.0)
    default_home_longitude: float = Field(default=-98.4934, ge=-180.0, le=180.0)
    schedule_store: Literal["memory", "supabase"] = Field(
        default="memory",
        description="Backing used to persist generated schedules.",
    )
    precompute_on_startup: bool = Field(
        default=False,
        description="Generate today's schedules for every worker when the API starts.",
    )
    precompute_max_workers: int = Field(default=4, ge=1)
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("workers_file", "visits_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
