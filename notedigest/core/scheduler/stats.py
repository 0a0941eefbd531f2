# notedigest/core/scheduler/stats.py
from __future__ import annotations
from notedigest.core.errors import StoreUnavailableError
from notedigest.core.logging import get_logger
from notedigest.core.models.execution import ScheduleExecution, ScheduleStats
from notedigest.core.store.base import ScheduleStore
from notedigest.core.types.status import ExecutionStatus

logger = get_logger('stats')


async def compute_schedule_stats(
    store: ScheduleStore, user_id: str, limit: int = 100
) -> ScheduleStats:
    """
    Dashboard counters for a user's schedules.

    Execution counters cover the most recent `limit` executions. When the
    execution history is not queryable yet (store not ready) they are
    reported as zero rather than failing the whole view.
    """
    schedules = await store.list_schedules_for_user(user_id)

    executions: list[ScheduleExecution] = []
    try:
        executions = await store.list_executions_for_user(user_id, limit)
    except StoreUnavailableError as e:
        logger.warning(
            f"Execution history of '{user_id}' unavailable, reporting empty stats: {e.message}"
        )

    upcoming = [
        schedule.next_run
        for schedule in schedules
        if schedule.is_active and schedule.next_run is not None
    ]
    return ScheduleStats(
        total_schedules=len(schedules),
        active_schedules=sum(1 for schedule in schedules if schedule.is_active),
        total_executions=len(executions),
        successful_executions=sum(
            1 for e in executions if e.status == ExecutionStatus.SUCCESS
        ),
        failed_executions=sum(
            1 for e in executions if e.status == ExecutionStatus.FAILED
        ),
        last_execution=max((e.executed_at for e in executions), default=None),
        next_execution=min(upcoming, default=None),
    )
