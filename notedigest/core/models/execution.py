# notedigest/core/models/execution.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing_extensions import Self
from notedigest.core.types.status import DeliveryChannel, ExecutionStatus


class DeliveryOutcome(BaseModel):
    """Recorded result of delivering a summary to one channel."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class ScheduleExecution(BaseModel):
    """
    Immutable audit record of one execution attempt.

    Fields:
        - status: success, partial or failed
        - error: present iff status is not success
        - delivery_results: outcome per attempted channel
        - content_processed: number of content items fetched
        - word_count / action_item_count: summary metrics (0 when no summary)
        - execution_time_ms: wall time spent in the executor
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str = Field(default_factory=lambda: f'exec_{uuid4().hex}')
    schedule_id: str
    user_id: str
    executed_at: datetime
    status: ExecutionStatus
    error: Optional[str] = None
    delivery_results: dict[DeliveryChannel, DeliveryOutcome] = Field(
        default_factory=dict
    )
    summary_id: Optional[str] = None
    content_processed: int = Field(default=0, ge=0)
    word_count: int = Field(default=0, ge=0)
    action_item_count: int = Field(default=0, ge=0)
    execution_time_ms: int = Field(default=0, ge=0)

    @field_validator('executed_at')
    @classmethod
    def normalize_to_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode='after')
    def validate_error_matches_status(self) -> Self:
        if self.status == ExecutionStatus.SUCCESS and self.error is not None:
            raise ValueError('successful execution cannot carry an error')
        if self.status != ExecutionStatus.SUCCESS and not self.error:
            raise ValueError(f'{self.status.value} execution requires an error')
        return self


class ScheduleStats(BaseModel):
    """Dashboard counters for one user's schedules."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_schedules: int = 0
    active_schedules: int = 0
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    last_execution: Optional[datetime] = None
    next_execution: Optional[datetime] = None
