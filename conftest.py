"""Fixtures shared by every test package in the repository."""

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheStore
from app.core.database import get_db
from app.main import app


@pytest.fixture
def fresh_cache():
    """Replace the application cache with an empty one for the test."""
    previous = app.state.cache
    app.state.cache = CacheStore(default_ttl=300, max_keys=100)
    yield app.state.cache
    app.state.cache = previous


@pytest.fixture
def mock_db():
    """Override the database dependency with an AsyncMock session."""
    session = AsyncMock(spec=AsyncSession)

    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    yield session
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
async def client(fresh_cache):
    """Create async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
