from __future__ import annotations
from datetime import datetime, time as datetime_time, timezone
from typing import Any, Optional
from sqlalchemy import (
    ARRAY,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for PostgreSQL models"""

    pass


class ScheduleModel(Base):
    """
    Stored schedule configuration and its run bookkeeping.

    - id: str # opaque schedule id chosen by the dashboard
    - user_id: str # owner
    - frequency: str # daily, weekly, monthly, custom
    - time: time # local wall-clock time of day
    - timezone: str # IANA zone for `time`
    - days_of_week: int[] # 0 = Sunday, weekly only
    - day_of_month: int # 1-31, monthly only
    - summary_options: jsonb # SummaryOptions, camelCase keys
    - delivery_methods: jsonb # DeliveryMethods, camelCase keys
    - next_run: datetime # first due instant, recomputed after every run
    - run_count / error_count: int # incremented in SQL by record_run
    """

    __tablename__ = 'notedigest_schedules'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default='')
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    frequency: Mapped[str] = mapped_column(String(16), nullable=False)
    time: Mapped[datetime_time] = mapped_column(Time, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default='UTC')
    days_of_week: Mapped[Optional[list[int]]] = mapped_column(
        ARRAY(Integer), nullable=True
    )
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cron_expression: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    summary_options: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    delivery_methods: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now
    )
    last_run: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_run: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    run_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index('ix_notedigest_schedules_user_created', 'user_id', 'created_at'),
    )


class ScheduleExecutionModel(Base):
    """
    Append-only audit row for one execution attempt.

    - status: str # success, partial, failed
    - error: str # set iff status != success
    - delivery_results: jsonb # channel -> {success, messageId, error}
    """

    __tablename__ = 'notedigest_schedule_executions'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    schedule_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_results: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, default=dict
    )
    summary_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    content_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    action_item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    execution_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index('ix_notedigest_executions_user_executed', 'user_id', 'executed_at'),
        Index(
            'ix_notedigest_executions_schedule_executed',
            'schedule_id',
            'executed_at',
        ),
    )
