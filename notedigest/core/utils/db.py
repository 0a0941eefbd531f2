# notedigest/core/utils/db.py
"""Shared helpers for classifying transient database errors."""

from __future__ import annotations

from psycopg import InterfaceError, OperationalError
from psycopg.errors import UndefinedTable
from sqlalchemy.exc import (
    DBAPIError,
    OperationalError as SAOperationalError,
    ProgrammingError as SAProgrammingError,
)


def is_dbapi_disconnect(exc: DBAPIError) -> bool:
    """Check whether a SQLAlchemy DBAPIError represents a connection disconnect."""
    connection_invalidated = bool(getattr(exc, 'connection_invalidated', False))
    is_disconnect = bool(getattr(exc, 'is_disconnect', False))
    return connection_invalidated or is_disconnect


def is_schema_not_ready(exc: BaseException) -> bool:
    """Check whether an exception means the tables are not created yet."""
    match exc:
        case UndefinedTable():
            return True
        case SAProgrammingError() as db_exc if isinstance(db_exc.orig, UndefinedTable):
            return True
        case _:
            return False


def is_retryable_connection_error(exc: BaseException) -> bool:
    """Check whether an exception is a transient connection error worth retrying."""
    match exc:
        case OperationalError() | InterfaceError() | SAOperationalError():
            return True
        case DBAPIError() as db_exc if is_dbapi_disconnect(db_exc):
            return True
        case _:
            return False


def is_store_not_ready(exc: BaseException) -> bool:
    """Transient store condition: connection trouble or schema still building."""
    return is_retryable_connection_error(exc) or is_schema_not_ready(exc)
