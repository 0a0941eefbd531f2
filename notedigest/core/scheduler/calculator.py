# notedigest/core/scheduler/calculator.py
from __future__ import annotations
import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo
from notedigest.core.models.schedule import ScheduleConfig
from notedigest.core.types.status import ScheduleFrequency
from notedigest.core.logging import get_logger

logger = get_logger('calculator')

# Caller-supplied rule for custom schedules. Must return an aware datetime
# strictly after from_instant.
CustomRule = Callable[[ScheduleConfig, datetime], datetime]


def compute_next_run(
    config: ScheduleConfig,
    from_instant: datetime,
    custom_rule: Optional[CustomRule] = None,
) -> datetime:
    """
    Calculate the first due instant of a schedule strictly after from_instant.

    Args:
        config: Schedule whose frequency, time, timezone and day fields apply
        from_instant: Calculate next run after this instant (must be aware)
        custom_rule: Rule used for custom schedules; without one, custom
            schedules run daily at config.time

    Returns:
        Next run time as UTC-aware datetime

    Raises:
        ValueError: If from_instant is naive or a custom rule does not advance
    """
    if from_instant.tzinfo is None:
        raise ValueError('from_instant must be timezone-aware')

    tz = ZoneInfo(config.timezone)
    local_time = from_instant.astimezone(tz)

    match config.frequency:
        case ScheduleFrequency.DAILY:
            next_run = _calculate_daily(config, local_time, tz)
        case ScheduleFrequency.WEEKLY:
            next_run = _calculate_weekly(config, local_time, tz)
        case ScheduleFrequency.MONTHLY:
            next_run = _calculate_monthly(config, local_time, tz)
        case ScheduleFrequency.CUSTOM:
            next_run = _calculate_custom(config, from_instant, local_time, tz, custom_rule)

    if next_run.tzinfo is None:
        raise RuntimeError('Calculated next_run is not timezone-aware')

    return next_run.astimezone(timezone.utc)


def _calculate_daily(
    config: ScheduleConfig, local_time: datetime, tz: ZoneInfo
) -> datetime:
    """Next local `time` after local_time, skipping nonexistent local times."""
    for day_offset in range(0, 8):
        candidate_date = (local_time + timedelta(days=day_offset)).date()
        candidate = _resolve_local_datetime(candidate_date, config, tz)
        if candidate is None or not _is_after(candidate, local_time):
            continue
        return candidate

    raise RuntimeError('Could not calculate next daily run within 7 days')


def _calculate_weekly(
    config: ScheduleConfig, local_time: datetime, tz: ZoneInfo
) -> datetime:
    """Nearest listed weekday whose local `time` is after local_time."""
    target_days = set(config.days_of_week or [])
    if not target_days:
        raise ValueError(f"weekly schedule '{config.id}' has no days_of_week")

    for day_offset in range(0, 15):
        candidate_date = (local_time + timedelta(days=day_offset)).date()
        if sunday_based_weekday(candidate_date) not in target_days:
            continue

        candidate = _resolve_local_datetime(candidate_date, config, tz)
        if candidate is None or not _is_after(candidate, local_time):
            continue
        return candidate

    raise RuntimeError('Could not calculate next weekly run within 2 weeks')


def _calculate_monthly(
    config: ScheduleConfig, local_time: datetime, tz: ZoneInfo
) -> datetime:
    """Nearest month day (clamped to the month's last day) after local_time."""
    if config.day_of_month is None:
        raise ValueError(f"monthly schedule '{config.id}' has no day_of_month")

    for month_offset in range(0, 25):
        year, month = _add_months(local_time.year, local_time.month, month_offset)
        day = min(config.day_of_month, calendar.monthrange(year, month)[1])

        candidate = _resolve_local_datetime(date(year, month, day), config, tz)
        if candidate is None or not _is_after(candidate, local_time):
            continue
        return candidate

    raise RuntimeError('Could not calculate next monthly run within 24 months')


def _calculate_custom(
    config: ScheduleConfig,
    from_instant: datetime,
    local_time: datetime,
    tz: ZoneInfo,
    custom_rule: Optional[CustomRule],
) -> datetime:
    if custom_rule is None:
        logger.warning(
            f"No custom rule registered for schedule '{config.id}' "
            f'(cron_expression={config.cron_expression!r}), using daily at {config.time}'
        )
        return _calculate_daily(config, local_time, tz)

    next_run = custom_rule(config, from_instant)
    if next_run.tzinfo is None:
        raise ValueError(f"custom rule for schedule '{config.id}' returned a naive datetime")
    if next_run <= from_instant:
        raise ValueError(
            f"custom rule for schedule '{config.id}' returned {next_run.isoformat()}, "
            f'not after {from_instant.isoformat()}'
        )
    return next_run


def sunday_based_weekday(value: date) -> int:
    """Weekday with 0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7


def _is_after(candidate: datetime, reference: datetime) -> bool:
    # Compare in UTC: same-zone comparisons ignore fold
    return candidate.astimezone(timezone.utc) > reference.astimezone(timezone.utc)


def _add_months(year: int, month: int, month_offset: int) -> tuple[int, int]:
    base = (year * 12) + (month - 1) + month_offset
    return (base // 12, (base % 12) + 1)


def _resolve_local_datetime(
    date_value: date,
    config: ScheduleConfig,
    tz: ZoneInfo,
) -> Optional[datetime]:
    """
    Resolve the schedule's wall-clock time on date_value into a zoned datetime.

    Returns None for nonexistent local times (spring-forward gaps).
    For ambiguous local times (fall-back), returns the earliest instant.
    """
    naive = datetime(
        year=date_value.year,
        month=date_value.month,
        day=date_value.day,
        hour=config.time.hour,
        minute=config.time.minute,
        second=config.time.second,
        microsecond=0,
    )
    valid: list[datetime] = []
    for fold in (0, 1):
        candidate = naive.replace(tzinfo=tz, fold=fold)
        roundtrip = candidate.astimezone(timezone.utc).astimezone(tz)
        if roundtrip.replace(tzinfo=None) == naive:
            valid.append(candidate)

    if not valid:
        return None

    valid.sort(key=lambda dt: dt.astimezone(timezone.utc))
    return valid[0]


def should_run_now(next_run: Optional[datetime], check_time: datetime) -> bool:
    """
    Determine if a schedule's next_run has been reached.

    Args:
        next_run: Scheduled next run time (UTC-aware), None if never computed
        check_time: Current time to check against (UTC-aware)
    """
    if next_run is None:
        # Never computed - run on first check
        return True

    return next_run <= check_time


def is_schedule_due(config: ScheduleConfig, now: datetime) -> bool:
    """Active, and next_run is absent or not after now."""
    return config.is_active and should_run_now(config.next_run, now)


# Source of the current instant; injected so tests can pin time
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
