"""Persistent-store access for the analytics layer.

``SalesStore`` wraps an ``AsyncSession`` and is the only place statements
are executed. SQLAlchemy failures are translated into ``StoreError`` with a
``retryable`` flag so callers can tell transient trouble (pool exhaustion,
dropped connections, statement timeouts) from permanent errors.
"""

from typing import Any

from sqlalchemy import Result, Row
from sqlalchemy.exc import (
    DBAPIError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import Executable

from app.core.exceptions import StoreError
from app.core.logging import get_logger

logger = get_logger(__name__)

# Driver exception names that indicate a transient condition.
_RETRYABLE_DRIVER_ERRORS = frozenset(
    {
        "QueryCanceledError",
        "ConnectionDoesNotExistError",
        "CannotConnectNowError",
        "TooManyConnectionsError",
        "DeadlockDetectedError",
    }
)


def is_retryable(exc: SQLAlchemyError) -> bool:
    """Classify a SQLAlchemy failure as transient or permanent."""
    if isinstance(exc, (PoolTimeoutError, OperationalError)):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        return type(exc.orig).__name__ in _RETRYABLE_DRIVER_ERRORS
    return False


class SalesStore:
    """Query-execution facade over a database session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def execute(self, statement: Executable) -> Result[Any]:
        """Execute a statement.

        Args:
            statement: SQLAlchemy executable.

        Returns:
            Buffered result.

        Raises:
            StoreError: If the database or the connection pool fails.
        """
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as e:
            retryable = is_retryable(e)
            logger.error(
                "store.query_failed",
                error=str(e),
                error_type=type(e).__name__,
                retryable=retryable,
                exc_info=True,
            )
            raise StoreError(
                "Connection pool exhausted" if isinstance(e, PoolTimeoutError) else str(e),
                retryable=retryable,
                details={"error_type": type(e).__name__},
            ) from e

    async def fetch_all(self, statement: Executable) -> list[Row[Any]]:
        """Execute and return every row."""
        result = await self.execute(statement)
        return list(result.all())

    async def fetch_one(self, statement: Executable) -> Row[Any] | None:
        """Execute and return the single row, or None."""
        result = await self.execute(statement)
        return result.one_or_none()

    async def scalar(self, statement: Executable) -> Any:
        """Execute and return the first column of the first row."""
        result = await self.execute(statement)
        return result.scalar()
