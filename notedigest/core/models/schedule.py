# notedigest/core/models/schedule.py
from __future__ import annotations
import re
from datetime import datetime, time as datetime_time, timezone
from enum import Enum
from typing import Annotated, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing_extensions import Self
from notedigest.core.errors import (
    ErrorCode,
    ScheduleValidationError,
    ValidationReport,
    raise_collected,
)
from notedigest.core.models.delivery import DeliveryMethods
from notedigest.core.types.status import ScheduleFrequency

# 0 = Sunday ... 6 = Saturday, as stored by the dashboard
DayOfWeek = Annotated[int, Field(ge=0, le=6)]

_SAFE_ID_RE = re.compile(r'^[a-zA-Z0-9_-]+$')
_CHAT_ID_RE = re.compile(r'^-?\d+$')

MAX_NAME_LENGTH = 100
MIN_CONTENT_DAYS = 1
MAX_CONTENT_DAYS = 30


class SummaryStyle(str, Enum):
    EXECUTIVE = 'executive'
    DETAILED = 'detailed'
    BULLET_POINTS = 'bullet_points'
    ACTION_ITEMS = 'action_items'


class SummaryLength(str, Enum):
    SHORT = 'short'
    MEDIUM = 'medium'
    LONG = 'long'


class SummaryOptions(BaseModel):
    """
    How the summarizer should shape the digest.

    Fields:
        - style / length / focus: passed through to the summarizer
        - content_days: lookback window for the content source
        - include_action_items / include_priority: summarizer flags
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    style: SummaryStyle = SummaryStyle.EXECUTIVE
    length: SummaryLength = SummaryLength.MEDIUM
    focus: list[str] = Field(default_factory=list)
    include_action_items: bool = True
    include_priority: bool = True
    content_days: int = Field(default=7, ge=1, description='Lookback window in days')


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ScheduleConfig(BaseModel):
    """
    A user's recurring digest schedule.

    Recurrence:
        - frequency: daily, weekly, monthly or custom
        - time: local wall-clock time of day (HH:MM)
        - timezone: IANA zone used to interpret `time`
        - days_of_week: required for weekly (0 = Sunday)
        - day_of_month: required for monthly (1-31, clamped in short months)
        - cron_expression: rule text for custom schedules

    Run bookkeeping (written by the executor only):
        - run_count, error_count, last_run, last_error, next_run
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str
    name: str = ''
    is_active: bool = True

    frequency: ScheduleFrequency
    time: datetime_time = Field(description='Local time of day to run (HH:MM)')
    timezone: str = Field(default='UTC', description='IANA timezone name')
    days_of_week: Optional[list[DayOfWeek]] = None
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    cron_expression: Optional[str] = None

    summary_options: SummaryOptions = Field(default_factory=SummaryOptions)
    delivery_methods: DeliveryMethods = Field(default_factory=DeliveryMethods)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    run_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    last_error: Optional[str] = None

    @field_validator('created_at', 'updated_at', 'last_run', 'next_run')
    @classmethod
    def normalize_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(value)

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ScheduleValidationError(
                message=f"unknown timezone '{value}'",
                code=ErrorCode.SCHEDULE_INVALID_TIMEZONE,
                notes=[f'zoneinfo lookup failed: {e}'],
                help_text="use an IANA zone name such as 'Europe/Berlin' or 'UTC'",
            ) from e
        return value

    @model_validator(mode='after')
    def validate_recurrence(self) -> Self:
        """Frequency-specific fields the next-run calculation depends on."""
        report = ValidationReport('schedule')
        if self.frequency == ScheduleFrequency.WEEKLY:
            if not self.days_of_week:
                report.add(
                    ScheduleValidationError(
                        message='weekly schedule has no days of week',
                        code=ErrorCode.SCHEDULE_MISSING_DAYS,
                        notes=[f"schedule '{self.id}' has frequency=weekly"],
                        help_text='set days_of_week, e.g. [1, 3] for Monday and Wednesday',
                    )
                )
            elif len(self.days_of_week) != len(set(self.days_of_week)):
                report.add(
                    ScheduleValidationError(
                        message='weekly schedule has duplicate days',
                        code=ErrorCode.SCHEDULE_DUPLICATE_DAYS,
                        notes=[f'days_of_week: {self.days_of_week}'],
                        help_text='each day should appear only once in the list',
                    )
                )
        if self.frequency == ScheduleFrequency.MONTHLY and self.day_of_month is None:
            report.add(
                ScheduleValidationError(
                    message='monthly schedule has no day of month',
                    code=ErrorCode.SCHEDULE_MISSING_DAY_OF_MONTH,
                    notes=[f"schedule '{self.id}' has frequency=monthly"],
                    help_text='set day_of_month between 1 and 31',
                )
            )
        raise_collected(report)
        return self

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def validate_new_schedule(config: ScheduleConfig) -> None:
    """
    Creation-time checks applied before a schedule is first saved.

    The engine itself tolerates schedules that fail these (for example a
    schedule with every channel disabled runs to a failed execution), so
    they are kept out of the model validators.

    Raises:
        ScheduleValidationError: a single problem
        MultipleValidationErrors: two or more problems
    """
    report = ValidationReport('schedule')

    if not _SAFE_ID_RE.match(config.id):
        report.add(
            ScheduleValidationError(
                message='invalid schedule id',
                code=ErrorCode.SCHEDULE_INVALID_ID,
                notes=[f'got id={config.id!r}'],
                help_text='ids may contain letters, digits, "_" and "-" only',
            )
        )
    if not _SAFE_ID_RE.match(config.user_id):
        report.add(
            ScheduleValidationError(
                message='invalid user id',
                code=ErrorCode.SCHEDULE_INVALID_USER,
                notes=[f'got user_id={config.user_id!r}'],
                help_text='ids may contain letters, digits, "_" and "-" only',
            )
        )
    if not config.name.strip() or len(config.name) > MAX_NAME_LENGTH:
        report.add(
            ScheduleValidationError(
                message='schedule name must be 1-100 characters',
                code=ErrorCode.SCHEDULE_INVALID_NAME,
                notes=[f'got {len(config.name)} characters'],
            )
        )
    if config.frequency == ScheduleFrequency.CUSTOM and not config.cron_expression:
        report.add(
            ScheduleValidationError(
                message='custom schedule has no cron expression',
                code=ErrorCode.SCHEDULE_MISSING_CRON,
                help_text='set cron_expression or pick daily/weekly/monthly',
            )
        )

    delivery = config.delivery_methods
    if not delivery.enabled_channels():
        report.add(
            ScheduleValidationError(
                message='no delivery method enabled',
                code=ErrorCode.SCHEDULE_NO_DELIVERY,
                help_text='enable telegram or email delivery',
            )
        )
    if delivery.telegram.enabled and not _CHAT_ID_RE.match(
        delivery.telegram.chat_id or ''
    ):
        report.add(
            ScheduleValidationError(
                message='invalid Telegram chat id',
                code=ErrorCode.SCHEDULE_INVALID_CHAT_ID,
                notes=[f'got chat_id={delivery.telegram.chat_id!r}'],
                help_text='chat ids are integers, optionally negative for groups',
            )
        )

    content_days = config.summary_options.content_days
    if not MIN_CONTENT_DAYS <= content_days <= MAX_CONTENT_DAYS:
        report.add(
            ScheduleValidationError(
                message='content days must be between 1 and 30',
                code=ErrorCode.SCHEDULE_INVALID_CONTENT_DAYS,
                notes=[f'got content_days={content_days}'],
            )
        )

    raise_collected(report)
