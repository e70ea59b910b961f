"""Route group exports."""

from . import health, init, schedules

__all__ = ["schedules", "init", "health"]
