# notedigest/core/app.py
from __future__ import annotations
import asyncio
from typing import Any, Iterable, Mapping, Optional
from notedigest.core.collaborators import (
    ContentSource,
    CredentialProvider,
    DeliverySink,
    Summarizer,
)
from notedigest.core.errors import (
    ConfigurationError,
    ErrorCode,
    NoteDigestError,
)
from notedigest.core.logging import get_logger
from notedigest.core.models.app import AppConfig
from notedigest.core.models.execution import ScheduleExecution, ScheduleStats
from notedigest.core.models.schedule import ScheduleConfig, validate_new_schedule
from notedigest.core.scheduler.calculator import (
    Clock,
    CustomRule,
    compute_next_run,
    utc_now,
)
from notedigest.core.scheduler.executor import ScheduleExecutor
from notedigest.core.scheduler.manager import ScheduleManager
from notedigest.core.scheduler.stats import compute_schedule_stats
from notedigest.core.store.base import (
    ScheduleStore,
    load_owned_schedule,
    validate_update_fields,
)
from notedigest.core.store.postgres import PostgresScheduleStore
from notedigest.core.types.status import DeliveryChannel

# Fields that determine when a schedule is due
RECURRENCE_FIELDS: frozenset[str] = frozenset(
    {'frequency', 'time', 'timezone', 'days_of_week', 'day_of_month', 'cron_expression'}
)


def _no_location(error: NoteDigestError) -> NoteDigestError:
    """Drop the auto-detected source location; inside the app it points at notedigest itself."""
    error.location = None
    return error


class NoteDigest:
    """
    Application object: configuration, store and the services a schedule
    execution talks to, wired into an executor and a manager.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        credentials: Optional[CredentialProvider] = None,
        content_source: Optional[ContentSource] = None,
        summarizer: Optional[Summarizer] = None,
        sinks: Iterable[DeliverySink] = (),
        custom_rule: Optional[CustomRule] = None,
        store: Optional[ScheduleStore] = None,
        clock: Clock = utc_now,
    ):
        self.config = config
        self.credentials = credentials
        self.content_source = content_source
        self.summarizer = summarizer
        self.sinks: list[DeliverySink] = list(sinks)
        self.custom_rule = custom_rule
        self.clock = clock
        self._store = store
        self._manager: Optional[ScheduleManager] = None
        self.logger = get_logger('app')

        self.logger.info(
            f'notedigest initialized with {len(self.sinks)} delivery sink(s)'
        )

    def register_sink(self, sink: DeliverySink) -> None:
        """Add a delivery sink. Must happen before the executor is built."""
        if self._manager is not None:
            raise RuntimeError('cannot register sinks after the manager was built')
        self.sinks.append(sink)

    def get_store(self) -> ScheduleStore:
        """Get the configured schedule store (PostgreSQL unless one was injected)"""
        if self._store is None:
            self._store = PostgresScheduleStore(self.config.store)
        return self._store

    def build_executor(self) -> ScheduleExecutor:
        credentials = self.credentials
        content_source = self.content_source
        summarizer = self.summarizer
        if credentials is None or content_source is None or summarizer is None:
            raise ConfigurationError(
                message='app is missing collaborators required to execute schedules',
                code=ErrorCode.APP_MISSING_COLLABORATOR,
                notes=[f'missing: {", ".join(self._missing_collaborators())}'],
                help_text='pass credentials=, content_source= and summarizer= to NoteDigest(...)',
            )

        manager_config = self.config.manager
        return ScheduleExecutor(
            self.get_store(),
            credentials,
            content_source,
            summarizer,
            self.sinks,
            custom_rule=self.custom_rule,
            content_timeout=manager_config.content_timeout_seconds,
            summarize_timeout=manager_config.summarize_timeout_seconds,
            delivery_timeout=manager_config.delivery_timeout_seconds,
            clock=self.clock,
        )

    def get_manager(self) -> ScheduleManager:
        """The app's schedule manager, built on first use."""
        if self._manager is None:
            self._manager = ScheduleManager(
                self.get_store(),
                self.build_executor(),
                self.config.manager,
                clock=self.clock,
            )
        return self._manager

    def _missing_collaborators(self) -> list[str]:
        missing: list[str] = []
        if self.credentials is None:
            missing.append('credentials')
        if self.content_source is None:
            missing.append('content_source')
        if self.summarizer is None:
            missing.append('summarizer')
        return missing

    # ----------------- Schedule CRUD -----------------

    async def create_schedule(self, config: ScheduleConfig) -> ScheduleConfig:
        """
        Validate and store a new schedule with its first next_run computed.

        Raises:
            ScheduleValidationError / MultipleValidationErrors: invalid schedule
        """
        validate_new_schedule(config)
        now = self.clock()
        schedule = config.model_copy(
            update={
                'created_at': now,
                'updated_at': now,
                'next_run': compute_next_run(config, now, self.custom_rule),
            }
        )
        await self.get_store().save_schedule(schedule)
        self.logger.info(
            f"Created schedule '{schedule.id}' for user '{schedule.user_id}', "
            f'first run at {schedule.next_run.isoformat() if schedule.next_run else None}'
        )
        return schedule

    async def update_schedule(
        self, schedule_id: str, user_id: str, fields: Mapping[str, Any]
    ) -> ScheduleConfig:
        """
        Apply a partial update. A change to any recurrence field recomputes
        next_run from now.
        """
        validate_update_fields(fields)
        store = self.get_store()
        current = await load_owned_schedule(store, schedule_id, user_id)

        # Re-validate the merged document so model invariants still hold
        merged = ScheduleConfig.model_validate({**current.model_dump(), **fields})
        validate_new_schedule(merged)

        changes: dict[str, Any] = {name: getattr(merged, name) for name in fields}
        if RECURRENCE_FIELDS & set(fields) and merged.is_active:
            changes['next_run'] = compute_next_run(merged, self.clock(), self.custom_rule)

        await store.update_schedule_fields(schedule_id, changes)
        return merged.model_copy(update=changes)

    async def delete_schedule(self, schedule_id: str, user_id: str) -> bool:
        return await self.get_store().delete_schedule(schedule_id, user_id)

    async def list_schedules(self, user_id: str) -> list[ScheduleConfig]:
        return await self.get_store().list_schedules_for_user(user_id)

    async def list_executions(
        self,
        user_id: str,
        *,
        schedule_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ScheduleExecution]:
        limit = limit or self.config.manager.execution_history_limit
        store = self.get_store()
        if schedule_id is None:
            return await store.list_executions_for_user(user_id, limit)
        return await store.list_executions_for_schedule(schedule_id, user_id, limit)

    async def get_stats(self, user_id: str) -> ScheduleStats:
        return await compute_schedule_stats(
            self.get_store(), user_id, self.config.manager.execution_history_limit
        )

    # ----------------- Validation -----------------

    def check(self, *, live: bool = False) -> list[NoteDigestError]:
        """Orchestrate phased validation and return all errors found.

        Phase 1: Config, already validated at construction.
        Phase 2: Collaborators, present and covering every delivery channel.
        Phase 3 (if live): Store connectivity and schema.

        Returns:
            List of all NoteDigestError instances found across phases.
            Empty list means all validations passed.
        """
        all_errors: list[NoteDigestError] = []

        all_errors.extend(self._check_collaborators())
        if all_errors:
            return all_errors

        if live:
            all_errors.extend(self._check_store_connectivity())

        return all_errors

    def _check_collaborators(self) -> list[NoteDigestError]:
        errors: list[NoteDigestError] = []
        missing = self._missing_collaborators()
        if missing:
            errors.append(
                _no_location(
                    ConfigurationError(
                        message='app is missing collaborators',
                        code=ErrorCode.APP_MISSING_COLLABORATOR,
                        notes=[f'missing: {", ".join(missing)}'],
                        help_text='pass credentials=, content_source= and summarizer= to NoteDigest(...)',
                    )
                )
            )

        seen: set[DeliveryChannel] = set()
        for sink in self.sinks:
            if sink.channel in seen:
                errors.append(
                    _no_location(
                        ConfigurationError(
                            message=f'duplicate delivery sink for {sink.channel.value}',
                            code=ErrorCode.APP_MISSING_COLLABORATOR,
                            help_text='register at most one sink per channel',
                        )
                    )
                )
            seen.add(sink.channel)

        uncovered = [channel.value for channel in DeliveryChannel if channel not in seen]
        if uncovered:
            self.logger.warning(
                f'No delivery sink for {uncovered}; deliveries to these channels will fail'
            )
        return errors

    def _check_store_connectivity(self) -> list[NoteDigestError]:
        """Ping the store and make sure its schema exists."""
        errors: list[NoteDigestError] = []
        store = self.get_store()

        async def _test_store() -> None:
            if isinstance(store, PostgresScheduleStore):
                try:
                    await store.ensure_schema_initialized()
                    await store.ping()
                finally:
                    await store.close_async()
            else:
                await store.list_schedules_for_user('__notedigest_check__')

        try:
            asyncio.run(_test_store())
        except NoteDigestError as exc:
            errors.append(exc)
        except Exception as exc:
            errors.append(
                _no_location(
                    ConfigurationError(
                        message='store connectivity check failed',
                        code=ErrorCode.STORE_INVALID_URL,
                        notes=[str(exc)],
                        help_text='check database_url in PostgresConfig',
                    )
                )
            )
        return errors
