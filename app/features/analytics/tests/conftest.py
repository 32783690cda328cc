"""Test fixtures for analytics module."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.cache import CacheStore
from app.core.config import Settings
from app.features.analytics.service import AnalyticsService
from app.features.analytics.timeseries import Bucket


@pytest.fixture
def make_result():
    """Factory for mock SQLAlchemy results."""

    def _make(rows=None, scalar=None, one=None) -> MagicMock:
        result = MagicMock()
        result.all.return_value = rows or []
        result.scalar.return_value = scalar
        result.one_or_none.return_value = one
        return result

    return _make


@pytest.fixture
def mock_session() -> AsyncMock:
    """AsyncSession stand-in; tests set ``execute`` results."""
    return AsyncMock()


@pytest.fixture
def cache() -> CacheStore:
    return CacheStore(default_ttl=300, max_keys=100)


@pytest.fixture
def analytics_service(cache: CacheStore) -> AnalyticsService:
    """Service with a fixed 'today' so default ranges are deterministic."""
    return AnalyticsService(cache, settings=Settings(), today=lambda: date(2024, 6, 30))


@pytest.fixture
def monthly_buckets() -> list[Bucket]:
    """Three monthly buckets, unordered."""
    return [
        Bucket(period=date(2024, 2, 1), value=150.0, unique_users=3, median=50.0),
        Bucket(period=date(2024, 1, 1), value=100.0, unique_users=2, median=40.0),
        Bucket(period=date(2024, 3, 1), value=150.0, unique_users=3, median=55.0),
    ]
