"""Analytics service: read-through caching in front of the sales queries.

Every public operation derives a cache key, returns a cached result when one
is live, and otherwise computes the result, stores it with a TTL matched to
how often the underlying data changes, and returns it.

The cache is an optimization only. Any failure inside it is logged and the
request is served by direct computation.
"""

import datetime
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import KEY_DELIMITER, CacheStore, derive_key, get_cache
from app.core.config import Settings, get_settings
from app.core.exceptions import CacheError
from app.core.logging import get_logger
from app.features.analytics.leaderboard import LeaderboardRanker
from app.features.analytics.schemas import (
    AnalyticsParams,
    AnalyticsResponse,
    DateRange,
    LeaderboardEntry,
    LeaderboardParams,
)
from app.features.analytics.timeseries import TimeSeriesAggregator, calculate_summary
from app.features.sales.queries import (
    SalesQueryBuilder,
    build_group_statistics,
    build_sale_lookup,
    build_user_statistics,
    row_to_export,
    row_to_group_statistics,
    row_to_sale,
    row_to_user_statistics,
)
from app.features.sales.schemas import (
    ExportRow,
    GroupStatistics,
    SalePage,
    SaleRow,
    SalesFilter,
    UserStatistics,
)
from app.features.sales.store import SalesStore

logger = get_logger(__name__)

T = TypeVar("T")

# Key prefixes of filter-derived views that any sales change can affect.
SALES_VIEW_OPERATIONS = ("sales", "analytics", "leaderboard")


def sale_key(sale_id: int) -> str:
    return f"sale{KEY_DELIMITER}{sale_id}"


def user_stats_key(user_id: int) -> str:
    return f"user{KEY_DELIMITER}{user_id}{KEY_DELIMITER}stats"


def group_stats_key(group_id: int) -> str:
    return f"group{KEY_DELIMITER}{group_id}{KEY_DELIMITER}stats"


class AnalyticsService:
    """Cached access to sales listings, lookups, analytics and statistics.

    One instance per request is fine; the only shared state is the injected
    cache. Concurrent misses on the same key each compute and write; the
    last write wins.
    """

    def __init__(
        self,
        cache: CacheStore,
        settings: Settings | None = None,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        """Initialize analytics service.

        Args:
            cache: Process-wide cache store.
            settings: Application settings (TTLs, defaults).
            today: Date source for default analytics ranges.
        """
        self.cache = cache
        self.settings = settings or get_settings()
        self._today = today

    # -------------------------------------------------------------------------
    # Cache plumbing
    # -------------------------------------------------------------------------

    def _cache_failed(self, exc: CacheError) -> None:
        logger.warning(
            "analytics.cache_error",
            operation=exc.details.get("operation"),
            key=exc.details.get("key"),
            error=exc.message,
            error_type=exc.details.get("error_type", type(exc).__name__),
        )

    def _cache_get(self, key: str) -> Any | None:
        try:
            return self.cache.get(key)
        except CacheError as e:
            self._cache_failed(e)
            return None

    def _cache_set(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.cache.set(key, value, ttl)
        except CacheError as e:
            self._cache_failed(e)

    def _cache_delete(self, key: str) -> int:
        try:
            return self.cache.delete(key)
        except CacheError as e:
            self._cache_failed(e)
            return 0

    def _cache_invalidate(self, prefix: str) -> int:
        try:
            return self.cache.invalidate(prefix)
        except CacheError as e:
            self._cache_failed(e)
            return 0

    async def _read_through(
        self,
        key: str,
        ttl: int,
        compute: Callable[[], Awaitable[T]],
    ) -> T:
        """Return the cached value for ``key`` or compute and cache it.

        ``None`` results (unknown ids) are returned but never cached.
        """
        cached = self._cache_get(key)
        if cached is not None:
            return cached  # type: ignore[no-any-return]

        result = await compute()
        if result is not None:
            self._cache_set(key, result, ttl)
        return result

    # -------------------------------------------------------------------------
    # Sales
    # -------------------------------------------------------------------------

    async def list_sales(self, db: AsyncSession, sales_filter: SalesFilter) -> SalePage:
        """List one page of sales matching the filter.

        Args:
            db: Database session.
            sales_filter: Predicates, sort and pagination.

        Returns:
            Page of rows plus the unpaginated total.
        """

        async def compute() -> SalePage:
            store = SalesStore(db)
            query = SalesQueryBuilder(sales_filter).build()
            total = int(await store.scalar(query.count_statement) or 0)
            rows = await store.fetch_all(query.statement) if total else []
            page = SalePage(rows=[row_to_sale(row) for row in rows], total=total)

            logger.info(
                "analytics.sales_listed",
                total=total,
                returned=len(page.rows),
                limit=sales_filter.limit,
                offset=sales_filter.offset,
            )
            return page

        return await self._read_through(
            derive_key("sales", sales_filter),
            self.settings.cache_default_ttl,
            compute,
        )

    async def get_sale_by_id(self, db: AsyncSession, sale_id: int) -> SaleRow | None:
        """Look up one sale; None when it does not exist."""

        async def compute() -> SaleRow | None:
            row = await SalesStore(db).fetch_one(build_sale_lookup(sale_id))
            return row_to_sale(row) if row is not None else None

        return await self._read_through(sale_key(sale_id), self.settings.cache_long_ttl, compute)

    async def export_rows(self, db: AsyncSession, sales_filter: SalesFilter) -> list[ExportRow]:
        """All sales matching the filter, unpaginated and uncached."""
        stmt = SalesQueryBuilder(sales_filter).build_export()
        rows = await SalesStore(db).fetch_all(stmt)

        logger.info("analytics.sales_exported", rows=len(rows))
        return [row_to_export(row) for row in rows]

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------

    def _date_window(self, params: AnalyticsParams) -> tuple[datetime.date, datetime.date]:
        """End defaults to today (or the start, if later); start to a lookback."""
        start_date = params.start_date
        end_date = params.end_date

        if end_date is None:
            today = self._today()
            end_date = max(today, start_date) if start_date else today
        if start_date is None:
            start_date = end_date - datetime.timedelta(
                days=self.settings.analytics_default_lookback_days
            )
        return start_date, end_date

    def resolve_date_range(self, params: AnalyticsParams) -> AnalyticsParams:
        """Copy of ``params`` with missing dates filled in."""
        start_date, end_date = self._date_window(params)
        return params.model_copy(update={"start_date": start_date, "end_date": end_date})

    async def get_analytics(self, db: AsyncSession, params: AnalyticsParams) -> AnalyticsResponse:
        """Time series plus summary for the requested period and metric.

        Args:
            db: Database session.
            params: Period, metric, optional dates and grouping.

        Returns:
            Series (most recent first) and its summary.
        """
        start_date, end_date = self._date_window(params)
        effective = params.model_copy(update={"start_date": start_date, "end_date": end_date})

        async def compute() -> AnalyticsResponse:
            series = await TimeSeriesAggregator(SalesStore(db)).aggregate(
                period=effective.period,
                metric=effective.metric,
                start_date=start_date,
                end_date=end_date,
                group_by=effective.group_by,
            )
            summary = calculate_summary(series)

            logger.info(
                "analytics.timeseries_computed",
                period=effective.period.value,
                metric=effective.metric.value,
                start_date=str(start_date),
                end_date=str(end_date),
                buckets=len(series),
                trend=summary.trend.value,
            )
            return AnalyticsResponse(
                period=effective.period,
                metric=effective.metric,
                group_by=effective.group_by,
                date_range=DateRange(start=start_date, end=end_date),
                data=series,
                summary=summary,
            )

        return await self._read_through(
            derive_key("analytics", effective),
            self.settings.cache_long_ttl,
            compute,
        )

    async def get_leaderboard(
        self,
        db: AsyncSession,
        params: LeaderboardParams,
    ) -> list[LeaderboardEntry]:
        """Ranked sellers for one period window."""

        async def compute() -> list[LeaderboardEntry]:
            entries = await LeaderboardRanker(SalesStore(db)).rank(
                period=params.period,
                limit=params.limit,
                group_id=params.group_id,
                reference_date=params.reference_date,
            )
            logger.info(
                "analytics.leaderboard_computed",
                period=params.period.value,
                group_id=params.group_id,
                reference_date=str(params.reference_date) if params.reference_date else None,
                entries=len(entries),
            )
            return entries

        return await self._read_through(
            derive_key("leaderboard", params),
            self.settings.cache_default_ttl,
            compute,
        )

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    async def get_user_statistics(self, db: AsyncSession, user_id: int) -> UserStatistics | None:
        """Lifetime statistics of one user; None when the user is unknown."""

        async def compute() -> UserStatistics | None:
            row = await SalesStore(db).fetch_one(build_user_statistics(user_id))
            return row_to_user_statistics(row) if row is not None else None

        return await self._read_through(
            user_stats_key(user_id),
            self.settings.cache_long_ttl,
            compute,
        )

    async def get_group_statistics(
        self,
        db: AsyncSession,
        group_id: int,
    ) -> GroupStatistics | None:
        """Statistics of one group; None when the group is unknown."""

        async def compute() -> GroupStatistics | None:
            row = await SalesStore(db).fetch_one(build_group_statistics(group_id))
            return row_to_group_statistics(row) if row is not None else None

        return await self._read_through(
            group_stats_key(group_id),
            self.settings.cache_long_ttl,
            compute,
        )

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def invalidate_sales_views(self) -> int:
        """Drop every cached listing, time series and leaderboard."""
        return sum(
            self._cache_invalidate(f"{operation}{KEY_DELIMITER}")
            for operation in SALES_VIEW_OPERATIONS
        )

    def invalidate_sale(self, sale_id: int) -> int:
        """Drop cached views touching one sale."""
        return self._cache_delete(sale_key(sale_id)) + self.invalidate_sales_views()

    def invalidate_user(self, user_id: int) -> int:
        """Drop cached views touching one user."""
        prefix = f"user{KEY_DELIMITER}{user_id}{KEY_DELIMITER}"
        return self._cache_invalidate(prefix) + self.invalidate_sales_views()

    def invalidate_group(self, group_id: int) -> int:
        """Drop cached views touching one group."""
        prefix = f"group{KEY_DELIMITER}{group_id}{KEY_DELIMITER}"
        return self._cache_invalidate(prefix) + self.invalidate_sales_views()


def get_analytics_service(cache: CacheStore = Depends(get_cache)) -> AnalyticsService:
    """Dependency building the service around the application cache."""
    return AnalyticsService(cache)
