"""Schedule engine: next-run calculation, execution, and the control loop."""

from notedigest.core.scheduler.calculator import compute_next_run, is_schedule_due
from notedigest.core.scheduler.events import (
    ScheduleEventBus,
    ScheduleExecutionCompleted,
    ScheduleExecutionStarted,
)
from notedigest.core.scheduler.executor import ScheduleExecutor
from notedigest.core.scheduler.manager import ScheduleManager, SweepReport
from notedigest.core.scheduler.stats import compute_schedule_stats
from notedigest.core.scheduler.tracking import ExecutionTracker

__all__ = [
    'compute_next_run',
    'is_schedule_due',
    'ScheduleEventBus',
    'ScheduleExecutionCompleted',
    'ScheduleExecutionStarted',
    'ScheduleExecutor',
    'ScheduleManager',
    'SweepReport',
    'compute_schedule_stats',
    'ExecutionTracker',
]
