# notedigest/core/collaborators.py
"""
Interfaces of the services a schedule execution talks to.

Implementations live outside the engine (workspace API client, LLM
summarizer, Telegram/email senders). Failures are reported as follows:

- CredentialProvider returns None when the user has not connected a
  workspace.
- ContentSource raises ContentFetchError (AuthExpiredError,
  RateLimitedError); any other exception is treated the same way.
- Summarizer raises SummarizationError or any exception.
- DeliverySink returns Err(DeliveryFailure) for expected failures; a
  raised exception is recorded as a failure of that channel only.
"""

from __future__ import annotations
from typing import Optional, Protocol, runtime_checkable
from notedigest.core.models.content import ContentItem, Summary
from notedigest.core.models.delivery import ChannelConfig, DeliveryResult
from notedigest.core.models.schedule import SummaryOptions
from notedigest.core.types.status import DeliveryChannel


@runtime_checkable
class CredentialProvider(Protocol):
    async def get_content_credential(self, user_id: str) -> Optional[str]:
        """Access token for the user's note workspace, None if not connected."""
        ...


@runtime_checkable
class ContentSource(Protocol):
    async def fetch_content(
        self, credential: str, lookback_days: int
    ) -> list[ContentItem]:
        """Items edited within the last lookback_days days."""
        ...


@runtime_checkable
class Summarizer(Protocol):
    async def summarize(
        self, items: list[ContentItem], options: SummaryOptions
    ) -> Summary: ...


@runtime_checkable
class DeliverySink(Protocol):
    channel: DeliveryChannel

    async def deliver(
        self, channel_config: ChannelConfig, summary: Summary
    ) -> DeliveryResult: ...
