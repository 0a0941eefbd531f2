"""Tests for PostgresScheduleStore (notedigest/core/store/postgres.py).

Strategy: mock the DB layer (create_async_engine, async_sessionmaker) to
avoid a real PostgreSQL. Tests verify row conversion, error translation
and the statements handed to the session.
"""

from __future__ import annotations

from datetime import time as datetime_time
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from psycopg import OperationalError
from sqlalchemy.dialects import postgresql

from notedigest.core.errors import StoreUnavailableError
from notedigest.core.models.execution import DeliveryOutcome, ScheduleExecution
from notedigest.core.models.schedule import SummaryOptions, SummaryStyle
from notedigest.core.store.postgres import (
    _store_operation,
    execution_to_row,
    row_to_execution,
    row_to_schedule,
    schedule_to_row,
)
from notedigest.core.types.status import (
    DeliveryChannel,
    ExecutionStatus,
    ScheduleFrequency,
)
from tests.helpers.fakes import both_channels, make_schedule, utc


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_store(database_url: str = 'postgresql+psycopg://u:p@localhost/db') -> Any:
    """Create a PostgresScheduleStore with a mocked engine and session."""
    from notedigest.core.models.store import PostgresConfig

    with (
        patch('notedigest.core.store.postgres.create_async_engine') as mock_engine,
        patch('notedigest.core.store.postgres.async_sessionmaker') as mock_sm,
    ):
        mock_engine.return_value = MagicMock()
        mock_engine.return_value.dispose = AsyncMock()

        mock_session = AsyncMock()
        mock_session.add = MagicMock()
        mock_session.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session.__aexit__ = AsyncMock(return_value=None)
        mock_sm.return_value = MagicMock(return_value=mock_session)

        from notedigest.core.store.postgres import PostgresScheduleStore

        store = PostgresScheduleStore(PostgresConfig(database_url=database_url))

    store._test_session = mock_session
    return store


def _result(rowcount: int) -> MagicMock:
    result = MagicMock()
    result.rowcount = rowcount
    return result


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestScheduleRowConversion:
    def test_json_columns_use_camel_case(self) -> None:
        config = make_schedule(delivery_methods=both_channels())

        row = schedule_to_row(config)

        assert row['frequency'] == 'daily'
        assert row['delivery_methods']['telegram']['chatId'] == '12345'
        assert row['summary_options']['contentDays'] == 7
        assert row['time'] == datetime_time(9, 0)

    def test_round_trip_through_row(self) -> None:
        config = make_schedule(
            frequency=ScheduleFrequency.WEEKLY,
            days_of_week=[1, 3],
            delivery_methods=both_channels(),
            summary_options=SummaryOptions(style=SummaryStyle.DETAILED, content_days=3),
            next_run=utc(2025, 6, 4, 9),
            run_count=4,
            error_count=1,
            last_error='boom',
        )

        restored = row_to_schedule(SimpleNamespace(**schedule_to_row(config)))

        assert restored == config


@pytest.mark.unit
class TestExecutionRowConversion:
    def test_delivery_results_keyed_by_channel_value(self) -> None:
        execution = ScheduleExecution(
            schedule_id='sched_1',
            user_id='user_1',
            executed_at=utc(2025, 6, 1, 9),
            status=ExecutionStatus.PARTIAL,
            error='some deliveries failed (email: bounced)',
            delivery_results={
                DeliveryChannel.TELEGRAM: DeliveryOutcome(success=True, message_id='7'),
                DeliveryChannel.EMAIL: DeliveryOutcome(success=False, error='bounced'),
            },
            content_processed=2,
        )

        row = execution_to_row(execution)

        assert row['status'] == 'partial'
        assert row['delivery_results']['telegram'] == {
            'success': True,
            'messageId': '7',
            'error': None,
        }
        assert row_to_execution(SimpleNamespace(**row)) == execution

    def test_missing_delivery_results_become_empty(self) -> None:
        row = SimpleNamespace(
            id='exec_1',
            schedule_id='sched_1',
            user_id='user_1',
            executed_at=utc(2025, 6, 1),
            status='failed',
            error='content source not connected',
            delivery_results=None,
            summary_id=None,
            content_processed=0,
            word_count=0,
            action_item_count=0,
            execution_time_ms=3,
        )

        execution = row_to_execution(row)

        assert execution.delivery_results == {}
        assert execution.status == ExecutionStatus.FAILED


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestStoreOperation:
    def test_connection_error_becomes_store_unavailable(self) -> None:
        cause = OperationalError('connection refused')

        with pytest.raises(StoreUnavailableError) as exc_info:
            with _store_operation('record_run', 'sched_1'):
                raise cause

        assert exc_info.value.operation == 'record_run'
        assert exc_info.value.schedule_id == 'sched_1'
        assert exc_info.value.exception is cause

    def test_other_errors_propagate_unchanged(self) -> None:
        with pytest.raises(ValueError, match='bad'):
            with _store_operation('save_schedule'):
                raise ValueError('bad')


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestSchemaAdvisoryKey:
    def test_stable_per_url(self) -> None:
        store = _make_store('postgresql+psycopg://u:p@host1/db')

        assert store._schema_advisory_key() == store._schema_advisory_key()

    def test_differs_between_urls(self) -> None:
        a = _make_store('postgresql+psycopg://u:p@host_a/db')
        b = _make_store('postgresql+psycopg://u:p@host_b/db')

        assert a._schema_advisory_key() != b._schema_advisory_key()


@pytest.mark.unit
class TestScheduleOperations:
    @pytest.mark.asyncio
    async def test_get_missing_schedule_returns_none(self) -> None:
        store = _make_store()
        store._test_session.get = AsyncMock(return_value=None)

        assert await store.get_schedule_config('nope') is None

    @pytest.mark.asyncio
    async def test_get_unavailable_raises(self) -> None:
        store = _make_store()
        store._test_session.get = AsyncMock(side_effect=OperationalError('down'))

        with pytest.raises(StoreUnavailableError):
            await store.get_schedule_config('sched_1')

    @pytest.mark.asyncio
    async def test_save_merges_and_commits(self) -> None:
        store = _make_store()

        await store.save_schedule(make_schedule())

        store._test_session.merge.assert_awaited_once()
        store._test_session.commit.assert_awaited_once()
        merged = store._test_session.merge.call_args.args[0]
        assert merged.id == 'sched_1'
        assert merged.updated_at is not None

    @pytest.mark.asyncio
    async def test_update_rejects_identity_fields(self) -> None:
        store = _make_store()

        with pytest.raises(ValueError, match='cannot be updated'):
            await store.update_schedule_fields('sched_1', {'user_id': 'other'})

        store._test_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self) -> None:
        store = _make_store()

        with pytest.raises(ValueError, match='unknown schedule fields'):
            await store.update_schedule_fields('sched_1', {'color': 'red'})

    @pytest.mark.asyncio
    async def test_update_returns_false_when_missing(self) -> None:
        store = _make_store()
        store._test_session.execute = AsyncMock(return_value=_result(0))

        assert await store.update_schedule_fields('sched_1', {'is_active': False}) is False

    @pytest.mark.asyncio
    async def test_update_serializes_models_and_enums(self) -> None:
        store = _make_store()
        store._test_session.execute = AsyncMock(return_value=_result(1))

        updated = await store.update_schedule_fields(
            'sched_1',
            {
                'summary_options': SummaryOptions(content_days=3),
                'frequency': ScheduleFrequency.MONTHLY,
            },
        )

        assert updated is True
        stmt = store._test_session.execute.call_args.args[0]
        compiled = stmt.compile(dialect=postgresql.dialect()).params
        assert compiled['frequency'] == 'monthly'
        assert compiled['summary_options']['contentDays'] == 3
        assert 'updated_at' in compiled

    @pytest.mark.asyncio
    async def test_record_run_parameters(self) -> None:
        store = _make_store()
        store._test_session.execute = AsyncMock(return_value=_result(1))

        recorded = await store.record_run(
            'sched_1',
            executed_at=utc(2025, 6, 1, 9),
            next_run=utc(2025, 6, 2, 9),
            last_error='summarization failed: quota',
            failed=True,
        )

        assert recorded is True
        params = store._test_session.execute.call_args.args[1]
        assert params['schedule_id'] == 'sched_1'
        assert params['error_increment'] == 1
        assert params['next_run'] == utc(2025, 6, 2, 9)
        assert params['last_error'] == 'summarization failed: quota'

    @pytest.mark.asyncio
    async def test_record_run_success_does_not_count_error(self) -> None:
        store = _make_store()
        store._test_session.execute = AsyncMock(return_value=_result(1))

        await store.record_run(
            'sched_1',
            executed_at=utc(2025, 6, 1, 9),
            next_run=utc(2025, 6, 2, 9),
            last_error=None,
            failed=False,
        )

        assert store._test_session.execute.call_args.args[1]['error_increment'] == 0

    @pytest.mark.asyncio
    async def test_record_run_missing_schedule(self) -> None:
        store = _make_store()
        store._test_session.execute = AsyncMock(return_value=_result(0))

        recorded = await store.record_run(
            'gone',
            executed_at=utc(2025, 6, 1),
            next_run=utc(2025, 6, 2),
            last_error=None,
            failed=False,
        )

        assert recorded is False

    @pytest.mark.asyncio
    async def test_delete_reports_rowcount(self) -> None:
        store = _make_store()
        store._test_session.execute = AsyncMock(return_value=_result(1))

        assert await store.delete_schedule('sched_1', 'user_1') is True

    @pytest.mark.asyncio
    async def test_record_execution_adds_row(self) -> None:
        store = _make_store()
        execution = ScheduleExecution(
            schedule_id='sched_1',
            user_id='user_1',
            executed_at=utc(2025, 6, 1),
            status=ExecutionStatus.SUCCESS,
        )

        await store.record_execution(execution)

        added = store._test_session.add.call_args.args[0]
        assert added.id == execution.id
        assert added.status == 'success'
        store._test_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_disposes_engine(self) -> None:
        store = _make_store()

        await store.close_async()

        store.async_engine.dispose.assert_awaited_once()
