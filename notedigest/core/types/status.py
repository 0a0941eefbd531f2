# core/types/status.py
"""
Core enums shared across the schedule engine.
This module should not import from other application modules.
"""

from enum import Enum


class ExecutionStatus(str, Enum):
    """Outcome of one schedule execution attempt"""

    SUCCESS = 'success'  # Every enabled channel delivered the summary.

    PARTIAL = 'partial'  # Some channels delivered, or there was nothing to summarize.

    FAILED = 'failed'  # Nothing was delivered.

    @property
    def is_error(self) -> bool:
        """Whether this outcome counts against the schedule's error_count."""
        return self is ExecutionStatus.FAILED


class ScheduleFrequency(str, Enum):
    """Recurrence rule family of a schedule"""

    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'
    CUSTOM = 'custom'


class DeliveryChannel(str, Enum):
    """Delivery sinks a summary can be sent to"""

    TELEGRAM = 'telegram'
    EMAIL = 'email'
