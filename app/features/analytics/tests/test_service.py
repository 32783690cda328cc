"""Tests for the caching analytics service."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.cache import CacheStore
from app.core.config import Settings
from app.core.exceptions import CacheError, StoreError
from app.features.analytics import service as service_module
from app.features.analytics.schemas import (
    AnalyticsParams,
    LeaderboardParams,
    Metric,
    TimePeriod,
)
from app.features.analytics.service import AnalyticsService
from app.features.sales.schemas import SalesFilter


def sale_row(sale_id: int = 1) -> SimpleNamespace:
    return SimpleNamespace(
        id=sale_id,
        user_id=10,
        user_name="Ana Lopez",
        user_role="rep",
        amount=Decimal("99.00"),
        date=date(2024, 3, 1),
        groups=["North", None],
    )


class BrokenCache(CacheStore):
    """Cache whose every operation fails."""

    def get(self, key):
        raise CacheError("cache down", details={"operation": "get", "key": key})

    def set(self, key, value, ttl=None):
        raise CacheError("cache down", details={"operation": "set", "key": key})

    def delete(self, key):
        raise CacheError("cache down", details={"operation": "delete", "key": key})

    def invalidate(self, prefix):
        raise CacheError("cache down", details={"operation": "invalidate", "key": prefix})


def failing_clock() -> float:
    raise OSError("clock unavailable")


class TestListSales:
    """Tests for cached listing."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, analytics_service, mock_session, make_result):
        mock_session.execute = AsyncMock(
            side_effect=[make_result(scalar=1), make_result(rows=[sale_row()])]
        )

        first = await analytics_service.list_sales(mock_session, SalesFilter(user_id=10))
        second = await analytics_service.list_sales(mock_session, SalesFilter(user_id=10))

        assert first == second
        assert first.total == 1
        assert first.rows[0].groups == ["North"]
        assert mock_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_cached_under_default_ttl(
        self, analytics_service, cache, mock_session, make_result
    ):
        mock_session.execute = AsyncMock(
            side_effect=[make_result(scalar=1), make_result(rows=[sale_row()])]
        )

        await analytics_service.list_sales(mock_session, SalesFilter())

        assert cache.keys() == ["sales:limit:20:offset:0:sort_by:date:sort_order:desc"]

    @pytest.mark.asyncio
    async def test_empty_total_skips_row_query(self, analytics_service, mock_session, make_result):
        mock_session.execute = AsyncMock(return_value=make_result(scalar=0))

        page = await analytics_service.list_sales(mock_session, SalesFilter(user_id=99))

        assert page.rows == []
        assert page.total == 0
        mock_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_distinct_filters_distinct_entries(
        self, analytics_service, cache, mock_session, make_result
    ):
        mock_session.execute = AsyncMock(return_value=make_result(scalar=0))

        await analytics_service.list_sales(mock_session, SalesFilter(user_id=1))
        await analytics_service.list_sales(mock_session, SalesFilter(user_id=2))

        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_store_error_propagates(self, analytics_service, cache, mock_session):
        mock_session.execute = AsyncMock(side_effect=StoreError("timeout", retryable=True))

        with pytest.raises(StoreError):
            await analytics_service.list_sales(mock_session, SalesFilter())

        assert len(cache) == 0


class TestCacheFailures:
    """A failing cache never fails the request."""

    @pytest.mark.asyncio
    async def test_broken_cache_computes_directly(self, mock_session, make_result, monkeypatch):
        logger = MagicMock()
        monkeypatch.setattr(service_module, "logger", logger)
        service = AnalyticsService(BrokenCache(), settings=Settings())
        mock_session.execute = AsyncMock(
            side_effect=[make_result(scalar=1), make_result(rows=[sale_row()])]
        )

        page = await service.list_sales(mock_session, SalesFilter())

        assert page.total == 1
        events = [call.args[0] for call in logger.warning.call_args_list]
        assert events == ["analytics.cache_error", "analytics.cache_error"]

    @pytest.mark.asyncio
    async def test_internal_store_failure_falls_back(
        self, mock_session, make_result, monkeypatch
    ):
        """A CacheStore failing internally still serves the computed page."""
        logger = MagicMock()
        monkeypatch.setattr(service_module, "logger", logger)
        service = AnalyticsService(CacheStore(clock=failing_clock), settings=Settings())
        mock_session.execute = AsyncMock(
            side_effect=[make_result(scalar=1), make_result(rows=[sale_row()])]
        )

        page = await service.list_sales(mock_session, SalesFilter())

        assert page.total == 1
        failure = logger.warning.call_args.kwargs
        assert failure["operation"] == "set"
        assert failure["error_type"] == "OSError"

    def test_broken_cache_invalidation_returns_zero(self):
        service = AnalyticsService(BrokenCache(), settings=Settings())

        assert service.invalidate_sale(1) == 0

    @pytest.mark.asyncio
    async def test_full_cache_still_returns_result(self, mock_session, make_result):
        full = CacheStore(max_keys=1)
        full.set("sale:999", "occupied", ttl=600)
        service = AnalyticsService(full, settings=Settings())
        mock_session.execute = AsyncMock(return_value=make_result(one=sale_row(5)))

        sale = await service.get_sale_by_id(mock_session, 5)

        assert sale is not None
        assert sale.id == 5
        assert "sale:5" not in full


class TestGetSaleById:
    """Tests for single-sale lookup."""

    @pytest.mark.asyncio
    async def test_found_is_cached(self, analytics_service, cache, mock_session, make_result):
        mock_session.execute = AsyncMock(return_value=make_result(one=sale_row(3)))

        await analytics_service.get_sale_by_id(mock_session, 3)
        sale = await analytics_service.get_sale_by_id(mock_session, 3)

        assert sale.id == 3
        assert "sale:3" in cache
        mock_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_is_not_cached(self, analytics_service, cache, mock_session, make_result):
        mock_session.execute = AsyncMock(return_value=make_result(one=None))

        assert await analytics_service.get_sale_by_id(mock_session, 404) is None
        assert await analytics_service.get_sale_by_id(mock_session, 404) is None
        assert "sale:404" not in cache
        assert mock_session.execute.await_count == 2


class TestGetAnalytics:
    """Tests for cached time series."""

    def test_default_range(self, analytics_service):
        effective = analytics_service.resolve_date_range(AnalyticsParams())

        assert effective.end_date == date(2024, 6, 30)
        assert effective.start_date == date(2024, 5, 31)

    def test_start_only_ends_today(self, analytics_service):
        effective = analytics_service.resolve_date_range(
            AnalyticsParams(start_date=date(2024, 1, 1))
        )

        assert effective.end_date == date(2024, 6, 30)

    def test_future_start_only_is_single_day(self, analytics_service):
        effective = analytics_service.resolve_date_range(
            AnalyticsParams(start_date=date(2024, 8, 1))
        )

        assert effective.end_date == date(2024, 8, 1)

    def test_end_only_looks_back(self, analytics_service):
        effective = analytics_service.resolve_date_range(
            AnalyticsParams(end_date=date(2024, 3, 31))
        )

        assert effective.start_date == date(2024, 3, 1)

    @pytest.mark.asyncio
    async def test_omitted_dates_share_entry_with_explicit_defaults(
        self, analytics_service, mock_session, make_result
    ):
        mock_session.execute = AsyncMock(
            return_value=make_result(
                rows=[SimpleNamespace(period=date(2024, 6, 1), value=10, unique_users=1, median=10)]
            )
        )

        first = await analytics_service.get_analytics(mock_session, AnalyticsParams())
        second = await analytics_service.get_analytics(
            mock_session,
            AnalyticsParams(
                period=TimePeriod.MONTH,
                metric=Metric.SUM,
                start_date=date(2024, 5, 31),
                end_date=date(2024, 6, 30),
            ),
        )

        assert first == second
        assert first.date_range.start == date(2024, 5, 31)
        assert first.summary.count == 1
        mock_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_data_gives_empty_series(self, analytics_service, mock_session, make_result):
        mock_session.execute = AsyncMock(return_value=make_result(rows=[]))

        response = await analytics_service.get_analytics(
            mock_session, AnalyticsParams(metric=Metric.COUNT)
        )

        assert response.data == []
        assert response.summary.count == 0


class TestGetLeaderboard:
    """Tests for cached leaderboards."""

    @pytest.mark.asyncio
    async def test_empty_leaderboard_is_cached(
        self, analytics_service, cache, mock_session, make_result
    ):
        mock_session.execute = AsyncMock(return_value=make_result(scalar=None))

        first = await analytics_service.get_leaderboard(mock_session, LeaderboardParams())
        second = await analytics_service.get_leaderboard(mock_session, LeaderboardParams())

        assert first == second == []
        assert cache.keys() == ["leaderboard:limit:10:period:month"]
        mock_session.execute.assert_awaited_once()


class TestStatistics:
    """Tests for user and group statistics."""

    @pytest.mark.asyncio
    async def test_user_statistics_cached_by_id(
        self, analytics_service, cache, mock_session, make_result
    ):
        row = SimpleNamespace(
            id=10,
            name="Ana Lopez",
            role="rep",
            total_sales=2,
            total_revenue=Decimal("300.00"),
            avg_sale_amount=Decimal("150.00"),
            min_sale=Decimal("100.00"),
            max_sale=Decimal("200.00"),
            first_sale_date=date(2024, 1, 1),
            last_sale_date=date(2024, 2, 1),
            groups=["North"],
        )
        mock_session.execute = AsyncMock(return_value=make_result(one=row))

        stats = await analytics_service.get_user_statistics(mock_session, 10)

        assert stats.total_revenue == 300.0
        assert "user:10:stats" in cache

    @pytest.mark.asyncio
    async def test_unknown_group_returns_none(
        self, analytics_service, cache, mock_session, make_result
    ):
        mock_session.execute = AsyncMock(return_value=make_result(one=None))

        assert await analytics_service.get_group_statistics(mock_session, 7) is None
        assert len(cache) == 0


class TestInvalidation:
    """Tests for invalidation helpers."""

    @pytest.fixture
    def populated(self, cache: CacheStore) -> CacheStore:
        for key in (
            "sales:limit:20",
            "sale:1",
            "sale:10",
            "analytics:period:month",
            "leaderboard:limit:10",
            "user:1:stats",
            "user:10:stats",
            "group:1:stats",
        ):
            cache.set(key, "value")
        return cache

    def test_invalidate_sale_is_exact(self, analytics_service, populated):
        removed = analytics_service.invalidate_sale(1)

        assert removed == 4
        assert "sale:10" in populated
        assert "sale:1" not in populated
        assert "user:1:stats" in populated

    def test_invalidate_user(self, analytics_service, populated):
        analytics_service.invalidate_user(1)

        assert "user:1:stats" not in populated
        assert "user:10:stats" in populated
        assert "sales:limit:20" not in populated

    def test_invalidate_group(self, analytics_service, populated):
        analytics_service.invalidate_group(1)

        assert populated.keys() == ["sale:1", "sale:10", "user:1:stats", "user:10:stats"]

    def test_invalidate_sales_views(self, analytics_service, populated):
        assert analytics_service.invalidate_sales_views() == 3
