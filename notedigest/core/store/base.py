# notedigest/core/store/base.py
from __future__ import annotations
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol, runtime_checkable
from notedigest.core.errors import ScheduleDeniedError, ScheduleNotFoundError
from notedigest.core.models.execution import ScheduleExecution
from notedigest.core.models.schedule import ScheduleConfig

# Fields owned by identity; partial updates may not touch them.
IMMUTABLE_SCHEDULE_FIELDS: frozenset[str] = frozenset({'id', 'user_id', 'created_at'})


@runtime_checkable
class ScheduleStore(Protocol):
    """
    Keyed document store for schedules and their execution history.

    Every method may raise StoreUnavailableError when the backing store is
    not ready (index building, connection lost). Callers treat that as
    retryable; the store does not retry on its own.
    """

    async def get_schedule_config(self, schedule_id: str) -> Optional[ScheduleConfig]:
        ...

    async def list_schedules_for_user(self, user_id: str) -> list[ScheduleConfig]:
        """Newest first (by created_at)."""
        ...

    async def save_schedule(self, config: ScheduleConfig) -> None:
        """Insert or replace; updated_at is set to now."""
        ...

    async def update_schedule_fields(
        self, schedule_id: str, fields: Mapping[str, Any]
    ) -> bool:
        """Partial update by field name. Returns False if the schedule is missing."""
        ...

    async def record_run(
        self,
        schedule_id: str,
        *,
        executed_at: datetime,
        next_run: datetime,
        last_error: Optional[str],
        failed: bool,
    ) -> bool:
        """
        Apply post-execution bookkeeping in one write: run_count + 1,
        error_count + 1 if failed, last_run, last_error, next_run.
        Returns False if the schedule is missing.
        """
        ...

    async def delete_schedule(self, schedule_id: str, user_id: str) -> bool:
        ...

    async def record_execution(self, execution: ScheduleExecution) -> None:
        ...

    async def list_executions_for_user(
        self, user_id: str, limit: int
    ) -> list[ScheduleExecution]:
        """Newest first (by executed_at)."""
        ...

    async def list_executions_for_schedule(
        self, schedule_id: str, user_id: str, limit: int
    ) -> list[ScheduleExecution]:
        """Newest first (by executed_at)."""
        ...


def validate_update_fields(fields: Mapping[str, Any]) -> None:
    """Reject unknown or identity fields in a partial update."""
    unknown = set(fields) - set(ScheduleConfig.model_fields)
    if unknown:
        raise ValueError(f'unknown schedule fields: {sorted(unknown)}')
    locked = set(fields) & IMMUTABLE_SCHEDULE_FIELDS
    if locked:
        raise ValueError(f'schedule fields cannot be updated: {sorted(locked)}')


async def load_owned_schedule(
    store: ScheduleStore, schedule_id: str, user_id: str
) -> ScheduleConfig:
    """
    Fetch a schedule and check its owner.

    Raises:
        ScheduleNotFoundError: schedule does not exist
        ScheduleDeniedError: schedule belongs to another user
    """
    config = await store.get_schedule_config(schedule_id)
    if config is None:
        raise ScheduleNotFoundError(
            f"schedule '{schedule_id}' not found", schedule_id=schedule_id
        )
    if config.user_id != user_id:
        raise ScheduleDeniedError(
            f"schedule '{schedule_id}' does not belong to user '{user_id}'",
            schedule_id=schedule_id,
        )
    return config
