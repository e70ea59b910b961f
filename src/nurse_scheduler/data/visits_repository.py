"""Visit lookups: appointments joined with client coordinates."""

from __future__ import annotations

import csv
import functools
import logging
import math
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional, Sequence

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import Visit

logger = logging.getLogger(__name__)


def _coerce_float(value: Optional[str]) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    try:
        number = float(str(value).replace(",", ""))
    except ValueError:
        return None
    # "inf" and "nan" parse as floats but are never real coordinates
    return number if math.isfinite(number) else None


def _coerce_minutes(value) -> int:
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0


def _parse_visit_date(value: str) -> date:
    text = value.strip()
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return date.fromisoformat(text[:10])


@functools.lru_cache(maxsize=1)
def load_visits(source: Optional[Path] = None) -> tuple[tuple[str, date, Visit], ...]:
    """Load (worker_id, visit_date, visit) rows from the configured CSV file."""

    csv_path = source or settings.visits_file
    if not csv_path.exists():
        raise FileNotFoundError(f"Visit file not found: {csv_path}")

    rows: list[tuple[str, date, Visit]] = []
    with csv_path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            raise ValueError(f"Visit file '{csv_path}' is missing a header row.")
        for line_number, row in enumerate(reader, start=2):
            worker_id = (row.get("WorkerId") or row.get("worker_id") or "").strip()
            client_id = (row.get("ClientId") or row.get("client_id") or "").strip()
            raw_date = row.get("VisitDate") or row.get("visit_date") or ""
            if not worker_id or not client_id or not raw_date.strip():
                logger.warning(f"Skipping incomplete visit row {line_number} in {csv_path.name}")
                continue
            try:
                visit_date = _parse_visit_date(raw_date)
            except ValueError:
                logger.warning(f"Skipping visit row {line_number}: unparseable date '{raw_date}'")
                continue
            rows.append(
                (
                    worker_id,
                    visit_date,
                    Visit(
                        client_id=client_id,
                        latitude=_coerce_float(row.get("Latitude") or row.get("latitude")),
                        longitude=_coerce_float(row.get("Longitude") or row.get("longitude")),
                        service_minutes=_coerce_minutes(row.get("DurationMinutes") or row.get("duration_minutes")),
                        appointment_id=(row.get("AppointmentId") or row.get("appointment_id") or "").strip() or None,
                    ),
                )
            )
    return tuple(rows)


def _load_visits_from_database(worker_id: str, visit_date: date) -> list[Visit] | None:
    """Appointments for the worker on that day joined to client coordinates.

    Returns None when the database is not configured or the query fails.
    """
    supabase = get_supabase_client()
    if not supabase:
        return None

    start = datetime.combine(visit_date, datetime.min.time())
    end = start + timedelta(days=1)
    try:
        appointments = (
            supabase.table("appointments")
            .select("appointment_id,client_id,appointment_date")
            .eq("worker_id", worker_id)
            .gte("appointment_date", start.isoformat())
            .lt("appointment_date", end.isoformat())
            .order("appointment_date")
            .execute()
        ).data or []
        if not appointments:
            return []

        client_ids = sorted({str(row["client_id"]) for row in appointments})
        clients = (
            supabase.table("clients")
            .select("client_id,latitude,longitude,duration_minutes")
            .in_("client_id", client_ids)
            .execute()
        ).data or []
    except Exception as e:
        logger.debug(f"Visit query failed, falling back to file: {e}")
        return None

    client_lookup = {str(row["client_id"]): row for row in clients}
    visits: list[Visit] = []
    for row in appointments:
        client_id = str(row["client_id"])
        client = client_lookup.get(client_id, {})
        visits.append(
            Visit(
                client_id=client_id,
                latitude=_coerce_float(client.get("latitude")),
                longitude=_coerce_float(client.get("longitude")),
                service_minutes=_coerce_minutes(client.get("duration_minutes")),
                appointment_id=str(row.get("appointment_id")) if row.get("appointment_id") else None,
            )
        )
    return visits


class VisitRepository:
    """Visits for a worker/day, database first and CSV file second."""

    def visits_for(self, worker_id: str, visit_date: date) -> Sequence[Visit]:
        visits = _load_visits_from_database(worker_id, visit_date)
        if visits is not None:
            return visits
        return [
            visit
            for row_worker, row_date, visit in load_visits()
            if row_worker == worker_id and row_date == visit_date
        ]
