# notedigest/core/models/content.py
from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ContentItem(BaseModel):
    """One page or block of workspace content handed to the summarizer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str = ''
    content: str = ''
    url: Optional[str] = None
    last_edited: Optional[datetime] = None


class SummaryPriority(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class Summary(BaseModel):
    """
    Structured output of the summarizer.

    Only `summary`, `action_items` and the metrics are read by the
    executor; the rest is passed through to the delivery sinks.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    summary: str
    tags: list[str] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)
    key_insights: list[str] = Field(default_factory=list)
    priority: SummaryPriority = SummaryPriority.MEDIUM
    word_count: int = Field(default=0, ge=0)
    reading_time_minutes: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
