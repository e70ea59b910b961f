"""Exception types shared across the scheduling engine."""

from __future__ import annotations


class ScheduleInputError(ValueError):
    """Request cannot produce a schedule; nothing is generated or cached."""


class UnknownWorkerError(ScheduleInputError):
    def __init__(self, worker_id: str) -> None:
        super().__init__(f"Worker not found with ID: {worker_id}")
        self.worker_id = worker_id


class InvalidCoordinateError(ScheduleInputError):
    pass


class RoutingBackendError(ConnectionError):
    """The routing backend was unreachable or returned an unusable response."""


class ScheduleCancelledError(RuntimeError):
    """Schedule generation was cancelled or ran past its deadline."""
