# notedigest/core/store/postgres.py
from __future__ import annotations
import hashlib
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Optional
from pydantic import BaseModel
from sqlalchemy import delete, select, text, update
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from notedigest.core.errors import StoreUnavailableError
from notedigest.core.logging import get_logger
from notedigest.core.models.execution import ScheduleExecution
from notedigest.core.models.schedule import ScheduleConfig
from notedigest.core.models.schedule_pg import (
    Base,
    ScheduleExecutionModel,
    ScheduleModel,
)
from notedigest.core.models.store import PostgresConfig
from notedigest.core.store.base import validate_update_fields
from notedigest.core.utils.db import is_store_not_ready
from notedigest.core.utils.url import mask_database_url

logger = get_logger('store')

RECORD_RUN_SQL = text("""
    UPDATE notedigest_schedules
    SET last_run = :executed_at,
        next_run = :next_run,
        last_error = :last_error,
        run_count = run_count + 1,
        error_count = error_count + :error_increment,
        updated_at = :now
    WHERE id = :schedule_id
""")

SCHEMA_ADVISORY_LOCK_SQL = text(
    """SELECT pg_advisory_xact_lock(CAST(:key AS BIGINT))"""
)

# Columns stored as JSONB documents with camelCase keys
_JSON_COLUMNS = ('summary_options', 'delivery_methods')


@contextmanager
def _store_operation(
    operation: str, schedule_id: Optional[str] = None
) -> Iterator[None]:
    """Translate transient driver errors into StoreUnavailableError."""
    try:
        yield
    except StoreUnavailableError:
        raise
    except Exception as e:
        if is_store_not_ready(e):
            raise StoreUnavailableError(
                f'store not ready during {operation}: {e}',
                operation=operation,
                schedule_id=schedule_id,
                exception=e,
            ) from e
        raise


def _json_value(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode='json', by_alias=True)
    return value


def schedule_to_row(config: ScheduleConfig) -> dict[str, Any]:
    """Column values for a ScheduleModel row."""
    values = config.model_dump(
        exclude=set(_JSON_COLUMNS), mode='python'
    )
    values['frequency'] = config.frequency.value
    for column in _JSON_COLUMNS:
        values[column] = _json_value(getattr(config, column))
    return values


def row_to_schedule(row: ScheduleModel) -> ScheduleConfig:
    return ScheduleConfig.model_validate(
        {
            'id': row.id,
            'user_id': row.user_id,
            'name': row.name,
            'is_active': row.is_active,
            'frequency': row.frequency,
            'time': row.time,
            'timezone': row.timezone,
            'days_of_week': row.days_of_week,
            'day_of_month': row.day_of_month,
            'cron_expression': row.cron_expression,
            'summary_options': row.summary_options,
            'delivery_methods': row.delivery_methods,
            'created_at': row.created_at,
            'updated_at': row.updated_at,
            'last_run': row.last_run,
            'next_run': row.next_run,
            'run_count': row.run_count,
            'error_count': row.error_count,
            'last_error': row.last_error,
        }
    )


def execution_to_row(execution: ScheduleExecution) -> dict[str, Any]:
    values = execution.model_dump(exclude={'delivery_results'}, mode='python')
    values['status'] = execution.status.value
    values['delivery_results'] = {
        channel.value: outcome.model_dump(mode='json', by_alias=True)
        for channel, outcome in execution.delivery_results.items()
    }
    return values


def row_to_execution(row: ScheduleExecutionModel) -> ScheduleExecution:
    return ScheduleExecution.model_validate(
        {
            'id': row.id,
            'schedule_id': row.schedule_id,
            'user_id': row.user_id,
            'executed_at': row.executed_at,
            'status': row.status,
            'error': row.error,
            'delivery_results': row.delivery_results or {},
            'summary_id': row.summary_id,
            'content_processed': row.content_processed,
            'word_count': row.word_count,
            'action_item_count': row.action_item_count,
            'execution_time_ms': row.execution_time_ms,
        }
    )


class PostgresScheduleStore:
    """
    PostgreSQL-backed ScheduleStore.

    All operations are async and use SQLAlchemy async sessions over psycopg.
    Connection failures and a missing schema surface as StoreUnavailableError.
    """

    def __init__(self, config: PostgresConfig):
        self.config = config

        engine_cfg = self.config.model_dump(exclude={'database_url'}, exclude_none=True)
        self.async_engine = create_async_engine(self.config.database_url, **engine_cfg)
        self.session_factory = async_sessionmaker(
            self.async_engine, expire_on_commit=False
        )
        self._initialized = False

        logger.info(
            f'PostgresScheduleStore initialized ({mask_database_url(config.database_url)})'
        )

    def _schema_advisory_key(self) -> int:
        """
        Stable 64-bit advisory lock key for schema creation, derived from the
        database URL so different clusters do not contend on one key.
        """
        basis = self.config.database_url.encode('utf-8', errors='ignore')
        h = hashlib.sha256(b'notedigest-schema:' + basis).digest()
        return int.from_bytes(h[:8], byteorder='big', signed=True)

    async def ensure_schema_initialized(self) -> None:
        """
        Create tables and indexes if missing.

        Safe to call from several processes: DDL runs under an advisory lock.
        """
        if self._initialized:
            return
        with _store_operation('ensure_schema_initialized'):
            async with self.async_engine.begin() as conn:
                await conn.execute(
                    SCHEMA_ADVISORY_LOCK_SQL,
                    {'key': self._schema_advisory_key()},
                )
                await conn.run_sync(Base.metadata.create_all)
        self._initialized = True
        logger.info('Schedule store schema initialized')

    async def ping(self) -> None:
        """Round-trip a trivial query; raises StoreUnavailableError on failure."""
        with _store_operation('ping'):
            async with self.session_factory() as session:
                await session.execute(text('SELECT 1'))

    async def close_async(self) -> None:
        await self.async_engine.dispose()

    # ----------------- Schedules -----------------

    async def get_schedule_config(self, schedule_id: str) -> Optional[ScheduleConfig]:
        with _store_operation('get_schedule_config', schedule_id):
            async with self.session_factory() as session:
                row = await session.get(ScheduleModel, schedule_id)
                return row_to_schedule(row) if row is not None else None

    async def list_schedules_for_user(self, user_id: str) -> list[ScheduleConfig]:
        with _store_operation('list_schedules_for_user'):
            async with self.session_factory() as session:
                stmt = (
                    select(ScheduleModel)
                    .where(ScheduleModel.user_id == user_id)
                    .order_by(ScheduleModel.created_at.desc())
                )
                result = await session.execute(stmt)
                return [row_to_schedule(row) for row in result.scalars()]

    async def save_schedule(self, config: ScheduleConfig) -> None:
        values = schedule_to_row(config)
        values['updated_at'] = datetime.now(timezone.utc)
        with _store_operation('save_schedule', config.id):
            async with self.session_factory() as session:
                await session.merge(ScheduleModel(**values))
                await session.commit()
        logger.debug(f"Saved schedule '{config.id}' for user '{config.user_id}'")

    async def update_schedule_fields(
        self, schedule_id: str, fields: Mapping[str, Any]
    ) -> bool:
        validate_update_fields(fields)
        values = {name: _json_value(value) for name, value in fields.items()}
        if 'frequency' in values:
            values['frequency'] = getattr(values['frequency'], 'value', values['frequency'])
        values['updated_at'] = datetime.now(timezone.utc)

        with _store_operation('update_schedule_fields', schedule_id):
            async with self.session_factory() as session:
                result = await session.execute(
                    update(ScheduleModel)
                    .where(ScheduleModel.id == schedule_id)
                    .values(**values)
                )
                await session.commit()

        rows_updated = getattr(result, 'rowcount', 0)
        if rows_updated == 0:
            logger.warning(f"Failed to update schedule '{schedule_id}' - not found")
            return False
        logger.debug(f"Updated schedule '{schedule_id}': {sorted(fields)}")
        return True

    async def record_run(
        self,
        schedule_id: str,
        *,
        executed_at: datetime,
        next_run: datetime,
        last_error: Optional[str],
        failed: bool,
    ) -> bool:
        with _store_operation('record_run', schedule_id):
            async with self.session_factory() as session:
                result = await session.execute(
                    RECORD_RUN_SQL,
                    {
                        'schedule_id': schedule_id,
                        'executed_at': executed_at,
                        'next_run': next_run,
                        'last_error': last_error,
                        'error_increment': 1 if failed else 0,
                        'now': datetime.now(timezone.utc),
                    },
                )
                await session.commit()

        rows_updated = getattr(result, 'rowcount', 0)
        if rows_updated == 0:
            logger.warning(
                f"Failed to record run for schedule '{schedule_id}' - not found"
            )
            return False
        logger.debug(
            f"Recorded run for schedule '{schedule_id}': "
            f'last_run={executed_at}, next_run={next_run}, failed={failed}'
        )
        return True

    async def delete_schedule(self, schedule_id: str, user_id: str) -> bool:
        with _store_operation('delete_schedule', schedule_id):
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(ScheduleModel)
                    .where(ScheduleModel.id == schedule_id)
                    .where(ScheduleModel.user_id == user_id)
                )
                await session.commit()

        rows_deleted = getattr(result, 'rowcount', 0)
        if rows_deleted > 0:
            logger.info(f"Deleted schedule '{schedule_id}'")
            return True
        logger.debug(f"No schedule '{schedule_id}' owned by '{user_id}' to delete")
        return False

    # ----------------- Executions -----------------

    async def record_execution(self, execution: ScheduleExecution) -> None:
        with _store_operation('record_execution', execution.schedule_id):
            async with self.session_factory() as session:
                session.add(ScheduleExecutionModel(**execution_to_row(execution)))
                await session.commit()
        logger.debug(
            f"Recorded execution '{execution.id}' for schedule "
            f"'{execution.schedule_id}' with status {execution.status.value}"
        )

    async def list_executions_for_user(
        self, user_id: str, limit: int
    ) -> list[ScheduleExecution]:
        with _store_operation('list_executions_for_user'):
            async with self.session_factory() as session:
                stmt = (
                    select(ScheduleExecutionModel)
                    .where(ScheduleExecutionModel.user_id == user_id)
                    .order_by(ScheduleExecutionModel.executed_at.desc())
                    .limit(limit)
                )
                result = await session.execute(stmt)
                return [row_to_execution(row) for row in result.scalars()]

    async def list_executions_for_schedule(
        self, schedule_id: str, user_id: str, limit: int
    ) -> list[ScheduleExecution]:
        with _store_operation('list_executions_for_schedule', schedule_id):
            async with self.session_factory() as session:
                stmt = (
                    select(ScheduleExecutionModel)
                    .where(ScheduleExecutionModel.schedule_id == schedule_id)
                    .where(ScheduleExecutionModel.user_id == user_id)
                    .order_by(ScheduleExecutionModel.executed_at.desc())
                    .limit(limit)
                )
                result = await session.execute(stmt)
                return [row_to_execution(row) for row in result.scalars()]
