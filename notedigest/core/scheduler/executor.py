# notedigest/core/scheduler/executor.py
from __future__ import annotations
import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Iterable, Optional, TypeVar
from notedigest.core.collaborators import (
    ContentSource,
    CredentialProvider,
    DeliverySink,
    Summarizer,
)
from notedigest.core.errors import StoreUnavailableError
from notedigest.core.logging import get_logger
from notedigest.core.models.content import Summary
from notedigest.core.models.execution import DeliveryOutcome, ScheduleExecution
from notedigest.core.models.schedule import ScheduleConfig
from notedigest.core.scheduler.calculator import (
    Clock,
    CustomRule,
    compute_next_run,
    utc_now,
)
from notedigest.core.store.base import ScheduleStore, load_owned_schedule
from notedigest.core.types.result import is_ok
from notedigest.core.types.status import (
    DeliveryChannel,
    ExecutionStatus,
    ScheduleFrequency,
)

logger = get_logger('executor')

T = TypeVar('T')

NOT_CONNECTED_ERROR = 'content source not connected'
NO_CONTENT_ERROR = 'No content found for summarization'
NO_CHANNEL_ERROR = 'no delivery channel enabled'


@dataclass
class _RunOutcome:
    """What the pipeline produced before bookkeeping."""

    status: ExecutionStatus
    error: Optional[str] = None
    summary: Optional[Summary] = None
    content_processed: int = 0
    delivery_results: dict[DeliveryChannel, DeliveryOutcome] = field(
        default_factory=dict
    )


async def _with_timeout(awaitable: Awaitable[T], timeout: Optional[float]) -> T:
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout=timeout)


class ScheduleExecutor:
    """
    Runs one schedule end to end: fetch content, summarize, deliver, record.

    Content, summarization and delivery failures become data on the returned
    ScheduleExecution. Only a missing schedule, a schedule owned by someone
    else, or a store failure leaves execute() as an exception.

    Every completed execution advances the schedule's next_run, whatever its
    outcome, so a failing schedule never stalls.
    """

    def __init__(
        self,
        store: ScheduleStore,
        credentials: CredentialProvider,
        content_source: ContentSource,
        summarizer: Summarizer,
        sinks: Iterable[DeliverySink],
        *,
        custom_rule: Optional[CustomRule] = None,
        content_timeout: Optional[float] = None,
        summarize_timeout: Optional[float] = None,
        delivery_timeout: Optional[float] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.credentials = credentials
        self.content_source = content_source
        self.summarizer = summarizer
        self.sinks: dict[DeliveryChannel, DeliverySink] = {}
        for sink in sinks:
            if sink.channel in self.sinks:
                raise ValueError(f'duplicate delivery sink for {sink.channel.value}')
            self.sinks[sink.channel] = sink
        self.custom_rule = custom_rule
        self.content_timeout = content_timeout
        self.summarize_timeout = summarize_timeout
        self.delivery_timeout = delivery_timeout
        self.clock = clock

    async def execute(self, schedule_id: str, user_id: str) -> ScheduleExecution:
        """
        Execute a schedule once and record the result.

        Raises:
            ScheduleNotFoundError: schedule does not exist
            ScheduleDeniedError: schedule belongs to another user
            StoreUnavailableError: store not ready (caller may retry later)
        """
        config = await load_owned_schedule(self.store, schedule_id, user_id)

        logger.info(f"Executing schedule '{config.name or config.id}' ({config.id})")
        started = time.monotonic()
        outcome = await self._run_pipeline(config)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        executed_at = self.clock()
        summary = outcome.summary
        execution = ScheduleExecution(
            schedule_id=config.id,
            user_id=config.user_id,
            executed_at=executed_at,
            status=outcome.status,
            error=outcome.error,
            delivery_results=outcome.delivery_results,
            summary_id=summary.id if summary is not None else None,
            content_processed=outcome.content_processed,
            word_count=summary.word_count if summary is not None else 0,
            action_item_count=len(summary.action_items) if summary is not None else 0,
            execution_time_ms=elapsed_ms,
        )
        await self.store.record_execution(execution)

        next_run = self._next_run_after(config, execution.executed_at)
        updated = await self.store.record_run(
            config.id,
            executed_at=execution.executed_at,
            next_run=next_run,
            last_error=outcome.error,
            failed=outcome.status.is_error,
        )
        if not updated:
            # Deleted while running; the execution record is kept
            logger.warning(
                f"Schedule '{config.id}' disappeared before its run was recorded"
            )

        if outcome.status == ExecutionStatus.SUCCESS:
            logger.info(
                f"Schedule '{config.id}' succeeded in {elapsed_ms}ms, "
                f'next run at {next_run.isoformat()}'
            )
        else:
            logger.warning(
                f"Schedule '{config.id}' finished {outcome.status.value}: "
                f'{outcome.error}; will retry at {next_run.isoformat()}'
            )
        return execution

    def _next_run_after(self, config: ScheduleConfig, executed_at: datetime) -> datetime:
        try:
            return compute_next_run(config, executed_at, self.custom_rule)
        except ValueError as e:
            logger.error(
                f"Next run for schedule '{config.id}' could not be computed ({e}), "
                f'falling back to daily at {config.time}'
            )
            fallback = config.model_copy(update={'frequency': ScheduleFrequency.DAILY})
            return compute_next_run(fallback, executed_at)

    async def _run_pipeline(self, config: ScheduleConfig) -> _RunOutcome:
        try:
            credential = await self.credentials.get_content_credential(config.user_id)
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.warning(f"Credential lookup failed for user '{config.user_id}': {e}")
            return _RunOutcome(
                status=ExecutionStatus.FAILED,
                error=f'credential lookup failed: {e}',
            )
        if not credential:
            return _RunOutcome(status=ExecutionStatus.FAILED, error=NOT_CONNECTED_ERROR)

        lookback_days = config.summary_options.content_days
        try:
            items = await _with_timeout(
                self.content_source.fetch_content(credential, lookback_days),
                self.content_timeout,
            )
        except asyncio.TimeoutError:
            return _RunOutcome(
                status=ExecutionStatus.FAILED,
                error=f'content fetch timed out after {self.content_timeout}s',
            )
        except Exception as e:
            logger.warning(f"Content fetch failed for schedule '{config.id}': {e}")
            return _RunOutcome(
                status=ExecutionStatus.FAILED,
                error=f'content fetch failed: {e}',
            )

        if not items:
            logger.info(
                f"No content in the last {lookback_days} day(s) for schedule '{config.id}'"
            )
            return _RunOutcome(status=ExecutionStatus.PARTIAL, error=NO_CONTENT_ERROR)

        try:
            summary = await _with_timeout(
                self.summarizer.summarize(items, config.summary_options),
                self.summarize_timeout,
            )
        except asyncio.TimeoutError:
            return _RunOutcome(
                status=ExecutionStatus.FAILED,
                error=f'summarization timed out after {self.summarize_timeout}s',
                content_processed=len(items),
            )
        except Exception as e:
            logger.warning(f"Summarization failed for schedule '{config.id}': {e}")
            return _RunOutcome(
                status=ExecutionStatus.FAILED,
                error=f'summarization failed: {e}',
                content_processed=len(items),
            )

        channels = config.delivery_methods.enabled_channels()
        if not channels:
            return _RunOutcome(
                status=ExecutionStatus.FAILED,
                error=NO_CHANNEL_ERROR,
                summary=summary,
                content_processed=len(items),
            )

        results: dict[DeliveryChannel, DeliveryOutcome] = {}
        for channel in channels:
            results[channel] = await self._deliver(config, channel, summary)

        failures = {
            channel: outcome.error
            for channel, outcome in results.items()
            if not outcome.success
        }
        if not failures:
            status, error = ExecutionStatus.SUCCESS, None
        else:
            detail = '; '.join(
                f'{channel.value}: {reason}' for channel, reason in failures.items()
            )
            if len(failures) == len(results):
                status, error = ExecutionStatus.FAILED, f'all deliveries failed ({detail})'
            else:
                status, error = ExecutionStatus.PARTIAL, f'some deliveries failed ({detail})'

        return _RunOutcome(
            status=status,
            error=error,
            summary=summary,
            content_processed=len(items),
            delivery_results=results,
        )

    async def _deliver(
        self,
        config: ScheduleConfig,
        channel: DeliveryChannel,
        summary: Summary,
    ) -> DeliveryOutcome:
        """Deliver to one channel. Never raises; failures become the outcome."""
        channel_config = config.delivery_methods.channel_config(channel)
        if not channel_config.address:
            return DeliveryOutcome(success=False, error='no address configured')

        sink = self.sinks.get(channel)
        if sink is None:
            return DeliveryOutcome(
                success=False, error=f'no sink registered for {channel.value}'
            )

        try:
            result = await _with_timeout(
                sink.deliver(channel_config, summary), self.delivery_timeout
            )
        except asyncio.TimeoutError:
            return DeliveryOutcome(
                success=False,
                error=f'delivery timed out after {self.delivery_timeout}s',
            )
        except Exception as e:
            logger.error(
                f"Delivery sink for {channel.value} raised on schedule '{config.id}': {e}",
                exc_info=True,
            )
            return DeliveryOutcome(success=False, error=str(e) or type(e).__name__)

        if is_ok(result):
            return DeliveryOutcome(success=True, message_id=result.ok_value.message_id)

        failure = result.err_value
        logger.warning(
            f"Delivery to {channel.value} failed for schedule '{config.id}': "
            f'{failure.reason}'
        )
        return DeliveryOutcome(success=False, error=failure.reason)
