# notedigest/core/scheduler/tracking.py
from __future__ import annotations
import threading
from datetime import datetime, timezone
from notedigest.core.logging import get_logger

logger = get_logger('tracking')


class ExecutionTracker:
    """
    Set of schedule ids currently mid-execution.

    Membership is the only guard against running a schedule twice at once.
    A lock makes test-and-set atomic across the sweep, manual triggers and
    status reads from other threads (e.g. a dashboard request handler).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: dict[str, datetime] = {}

    def try_acquire(self, schedule_id: str) -> bool:
        """Mark schedule_id as running. Returns False if it already was."""
        with self._lock:
            if schedule_id in self._in_flight:
                return False
            self._in_flight[schedule_id] = datetime.now(timezone.utc)
            return True

    def release(self, schedule_id: str) -> bool:
        """Remove schedule_id. Returns False if it was not tracked."""
        with self._lock:
            removed = self._in_flight.pop(schedule_id, None) is not None
        if not removed:
            logger.debug(f"Release of untracked schedule '{schedule_id}' ignored")
        return removed

    def is_tracked(self, schedule_id: str) -> bool:
        with self._lock:
            return schedule_id in self._in_flight

    def started_at(self, schedule_id: str) -> datetime | None:
        with self._lock:
            return self._in_flight.get(schedule_id)

    def snapshot(self) -> dict[str, datetime]:
        """Copy of in-flight ids and when each was acquired."""
        with self._lock:
            return dict(self._in_flight)

    def clear(self) -> None:
        with self._lock:
            self._in_flight.clear()

    def __contains__(self, schedule_id: object) -> bool:
        with self._lock:
            return schedule_id in self._in_flight

    def __len__(self) -> int:
        with self._lock:
            return len(self._in_flight)
