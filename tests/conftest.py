"""Fixtures for database integration tests."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import get_settings
from app.core.database import Base
from app.features.sales.models import Group, Sale, User, UserGroup


@pytest.fixture
async def db_session():
    """Create async database session for integration tests.

    Creates all tables, provides a session, and drops them afterwards.
    Requires PostgreSQL at DATABASE_URL.
    """
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def seeded_session(db_session: AsyncSession) -> AsyncSession:
    """Three sellers in two groups with sales across March and April 2024.

    Ana (North, Enterprise): 300 + 200 in March, 50 in April
    Bo (North): 500 in March
    Cy (no group): 100 in March
    """
    db_session.add_all(
        [
            User(id=1, name="Ana", role="rep"),
            User(id=2, name="Bo", role="rep"),
            User(id=3, name="Cy", role="manager"),
            Group(id=1, name="North"),
            Group(id=2, name="Enterprise"),
        ]
    )
    await db_session.flush()
    db_session.add_all(
        [
            UserGroup(user_id=1, group_id=1),
            UserGroup(user_id=1, group_id=2),
            UserGroup(user_id=2, group_id=1),
            Sale(id=1, user_id=1, amount=Decimal("300.00"), date=date(2024, 3, 5)),
            Sale(id=2, user_id=1, amount=Decimal("200.00"), date=date(2024, 3, 20)),
            Sale(id=3, user_id=1, amount=Decimal("50.00"), date=date(2024, 4, 2)),
            Sale(id=4, user_id=2, amount=Decimal("500.00"), date=date(2024, 3, 11)),
            Sale(id=5, user_id=3, amount=Decimal("100.00"), date=date(2024, 3, 28)),
        ]
    )
    await db_session.flush()
    return db_session
