# notedigest/core/scheduler/events.py
"""
Lifecycle notifications published by the schedule manager.

Observers (e.g. a dashboard) subscribe to refresh derived views when a
schedule starts or finishes running. Delivery is synchronous and
best-effort: a failing listener is logged and does not affect the run or
other listeners.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Union
from notedigest.core.logging import get_logger
from notedigest.core.types.status import ExecutionStatus

logger = get_logger('events')


@dataclass(slots=True, frozen=True)
class ScheduleExecutionStarted:
    schedule_id: str
    schedule_name: str
    user_id: str
    manual: bool = False


@dataclass(slots=True, frozen=True)
class ScheduleExecutionCompleted:
    """
    Fields:
        success: the executor returned and the status is not failed
        status: execution status, None when the executor raised
        error: execution error or the raised exception's message
    """

    schedule_id: str
    schedule_name: str
    user_id: str
    success: bool
    status: Optional[ExecutionStatus] = None
    error: Optional[str] = None
    manual: bool = False


ScheduleEvent = Union[ScheduleExecutionStarted, ScheduleExecutionCompleted]
ScheduleEventListener = Callable[[ScheduleEvent], None]


class ScheduleEventBus:
    """Owned by a ScheduleManager; fans events out to subscribed listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[ScheduleEventListener] = []

    def subscribe(self, listener: ScheduleEventListener) -> Callable[[], None]:
        """Register listener. Returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: ScheduleEventListener) -> bool:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, event: ScheduleEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f'Listener {listener!r} failed on {type(event).__name__} '
                    f"for schedule '{event.schedule_id}': {e}",
                    exc_info=True,
                )
