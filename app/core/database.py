"""Async engine, session factory and request session for PostgreSQL."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings


class Base(DeclarativeBase):
    """Declarative base shared by the sales models and alembic."""


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the process-wide async engine with a bounded connection pool.

    Every connection carries a server-side ``statement_timeout`` so no
    query can block a request indefinitely.
    """
    settings = get_settings()
    engine: AsyncEngine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        connect_args={
            "server_settings": {
                "statement_timeout": str(settings.db_statement_timeout_ms),
            },
        },
    )
    return engine


@lru_cache
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Create async session maker bound to the shared engine."""
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def dispose_engine() -> None:
    """Close pooled connections at shutdown."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
        get_session_maker.cache_clear()
        get_engine.cache_clear()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session for one request.

    The sales routes only read, so the transaction is rolled back on
    exit instead of committed; nothing a request does outlives it.
    """
    async with get_session_maker()() as session:
        try:
            yield session
        finally:
            await session.rollback()
