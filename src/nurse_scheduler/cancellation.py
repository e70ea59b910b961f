"""Caller-driven cancellation for schedule generation."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from .errors import ScheduleCancelledError


@dataclass
class CancelToken:
    """Deadline and/or explicit cancel flag checked between blocking steps."""

    deadline: float | None = None
    event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_timeout(cls, seconds: float | None) -> "CancelToken":
        if seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self.event.set()

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.event.is_set():
            raise ScheduleCancelledError("Schedule generation was cancelled.")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise ScheduleCancelledError("Schedule generation timed out.")

    def acquire(self, lock: threading.Lock, poll_seconds: float = 0.05) -> None:
        """Block on ``lock`` until it is held or this token fires.

        The explicit cancel event has no wakeup of its own, so the wait is
        sliced into polls no longer than ``poll_seconds``.
        """
        while True:
            self.raise_if_cancelled()
            remaining = self.remaining()
            timeout = poll_seconds if remaining is None else min(poll_seconds, remaining)
            if lock.acquire(timeout=timeout):
                return
