"""Async execution helpers for sync runs."""

from musicsync.application.workers.run_queue import (
    SingleFlightQueue,
    first_completed,
    race_with_timeout,
)

__all__ = [
    "SingleFlightQueue",
    "first_completed",
    "race_with_timeout",
]
