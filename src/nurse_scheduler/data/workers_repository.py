"""Worker roster loader with database-first approach, falling back to Excel file."""

from __future__ import annotations

import functools
import logging
import math
from pathlib import Path
from typing import Optional, Sequence

from openpyxl import load_workbook

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import Worker

logger = logging.getLogger(__name__)


def _coerce_coordinate(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(str(value).replace(",", ""))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _load_workers_from_database() -> tuple[Worker, ...] | None:
    """Load workers from Supabase. Returns None if database not available or empty."""
    supabase = get_supabase_client()
    if not supabase:
        return None

    try:
        response = supabase.table("workers").select("worker_id,name,latitude,longitude").execute()
        if not response.data:
            return None

        workers: list[Worker] = []
        for row in response.data:
            try:
                workers.append(
                    Worker(
                        worker_id=str(row["worker_id"]).strip(),
                        name=str(row.get("name") or row["worker_id"]).strip(),
                        latitude=_coerce_coordinate(row.get("latitude")),
                        longitude=_coerce_coordinate(row.get("longitude")),
                    )
                )
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping invalid worker row: {e}")
                continue
        return tuple(workers) if workers else None
    except Exception as e:
        logger.debug(f"Worker query failed, falling back to file: {e}")
        return None


def _load_workers_from_file(source: Path | None = None) -> tuple[Worker, ...]:
    """Load workers from the roster workbook."""
    workbook_path = source or settings.workers_file
    if not workbook_path.exists():
        raise FileNotFoundError(f"Worker workbook not found: {workbook_path}")

    wb = load_workbook(workbook_path, data_only=True, read_only=True)
    sheet = wb.active
    rows = sheet.iter_rows(min_row=1, values_only=True)
    header = next(rows, None)
    if header is None:
        raise ValueError(f"Worker workbook '{workbook_path}' is empty.")

    header_map = {name: idx for idx, name in enumerate(header)}
    missing_columns = {"WorkerId", "Latitude", "Longitude"} - set(header_map)
    if missing_columns:
        raise ValueError(f"Worker workbook missing columns: {', '.join(sorted(missing_columns))}")

    def cell(row, column: str):
        # read-only sheets drop trailing empty cells
        idx = header_map.get(column)
        return row[idx] if idx is not None and idx < len(row) else None

    workers: list[Worker] = []
    for row in rows:
        worker_id = cell(row, "WorkerId")
        if worker_id is None or str(worker_id).strip() == "":
            continue
        name = cell(row, "Name")
        workers.append(
            Worker(
                worker_id=str(worker_id).strip(),
                name=str(name or worker_id).strip(),
                latitude=_coerce_coordinate(cell(row, "Latitude")),
                longitude=_coerce_coordinate(cell(row, "Longitude")),
            )
        )
    wb.close()
    return tuple(workers)


@functools.lru_cache(maxsize=1)
def get_workers() -> tuple[Worker, ...]:
    workers = _load_workers_from_database()
    if workers:
        return workers
    return _load_workers_from_file()


class WorkerRepository:
    """Worker lookups keyed by the natural string id."""

    def get_worker(self, worker_id: str) -> Worker | None:
        wanted = worker_id.strip()
        for worker in get_workers():
            if worker.worker_id == wanted:
                return worker
        return None

    def list_workers(self) -> Sequence[Worker]:
        return get_workers()
