"""Schedule persistence: the ScheduleStore interface and its PostgreSQL implementation."""

from notedigest.core.store.base import ScheduleStore
from notedigest.core.store.postgres import PostgresScheduleStore

__all__ = [
    'ScheduleStore',
    'PostgresScheduleStore',
]
