"""Time-series aggregation with period-over-period deltas.

The database groups sales into truncated periods and computes the per-bucket
aggregate, distinct sellers and median. Deltas against the preceding bucket
are computed here over ascending periods; output is most-recent-first.
"""

import datetime
from collections.abc import Sequence
from dataclasses import dataclass
from statistics import fmean
from typing import Any

from sqlalchemy import ColumnElement, Row, Select, distinct, func, literal_column, select

from app.core.logging import get_logger
from app.features.analytics.periods import TRUNCATE_UNITS
from app.features.analytics.schemas import (
    GroupBy,
    Metric,
    Summary,
    TimePeriod,
    TimeSeriesPoint,
    Trend,
)
from app.features.sales.models import Sale, UserGroup
from app.features.sales.store import SalesStore

logger = get_logger(__name__)

# Relative change (percent) between series halves that counts as a trend.
TREND_THRESHOLD_PCT = 10.0


def _metric_column(metric: Metric) -> ColumnElement[Any]:
    if metric == Metric.SUM:
        return func.sum(Sale.amount)
    if metric == Metric.AVG:
        return func.avg(Sale.amount)
    if metric == Metric.COUNT:
        return func.count(Sale.id)
    if metric == Metric.MAX:
        return func.max(Sale.amount)
    return func.min(Sale.amount)


@dataclass(frozen=True)
class Bucket:
    """Raw aggregate for one (period, group) before deltas are attached."""

    period: datetime.date
    value: float
    unique_users: int
    median: float
    group_key: str | None = None


def apply_deltas(buckets: Sequence[Bucket]) -> list[TimeSeriesPoint]:
    """Attach previous value, change and percent change to each bucket.

    Each bucket is compared with the preceding period of the same group.
    The earliest bucket of a group has no predecessor and reports zeros.

    Args:
        buckets: Buckets in any order.

    Returns:
        Points ordered by period, most recent first.
    """
    ordered = sorted(buckets, key=lambda b: (b.period, b.group_key or ""))
    previous: dict[str | None, float] = {}
    points: list[TimeSeriesPoint] = []

    for bucket in ordered:
        prior = previous.get(bucket.group_key)
        if prior is None:
            previous_value = change = percent_change = 0.0
        else:
            previous_value = prior
            change = bucket.value - prior
            percent_change = 0.0 if prior == 0 else change / prior * 100

        points.append(
            TimeSeriesPoint(
                period=bucket.period,
                group_key=bucket.group_key,
                value=bucket.value,
                unique_users=bucket.unique_users,
                median=bucket.median,
                previous_value=previous_value,
                change=change,
                percent_change=percent_change,
            )
        )
        previous[bucket.group_key] = bucket.value

    points.reverse()
    return points


def calculate_trend(values: Sequence[float]) -> Trend:
    """Classify a chronological series by comparing its two halves.

    The series is split at ``len // 2`` (an odd middle element joins the
    second half). A mean change above +10% is increasing, below -10% is
    decreasing. A zero first-half mean is compared by sign instead.
    """
    if len(values) < 2:
        return Trend.STABLE

    middle = len(values) // 2
    first_mean = fmean(values[:middle])
    second_mean = fmean(values[middle:])

    if first_mean == 0:
        if second_mean > 0:
            return Trend.INCREASING
        if second_mean < 0:
            return Trend.DECREASING
        return Trend.STABLE

    change_pct = (second_mean - first_mean) / first_mean * 100
    if change_pct > TREND_THRESHOLD_PCT:
        return Trend.INCREASING
    if change_pct < -TREND_THRESHOLD_PCT:
        return Trend.DECREASING
    return Trend.STABLE


def calculate_summary(points: Sequence[TimeSeriesPoint]) -> Summary:
    """Total, average, extremes, count and trend over a series.

    Points may come in any order; the trend is taken chronologically.
    """
    if not points:
        return Summary()

    values = [point.value for point in sorted(points, key=lambda p: p.period)]
    total = sum(values)

    return Summary(
        total=total,
        average=total / len(values),
        min=min(values),
        max=max(values),
        count=len(values),
        trend=calculate_trend(values),
    )


class TimeSeriesAggregator:
    """Runs the bucketed aggregate query and decorates its rows."""

    def __init__(self, store: SalesStore) -> None:
        self.store = store

    @staticmethod
    def build_query(
        period: TimePeriod,
        metric: Metric,
        start_date: datetime.date,
        end_date: datetime.date,
        group_by: GroupBy | None = None,
    ) -> Select[Any]:
        """Grouped aggregate over ``[start_date, end_date]``.

        The truncation unit comes from ``TRUNCATE_UNITS`` and is rendered
        inline so the GROUP BY expression matches the selected one.
        """
        bucket = func.date_trunc(literal_column(f"'{TRUNCATE_UNITS[period]}'"), Sale.date)

        columns: list[ColumnElement[Any]] = [
            bucket.label("period"),
            _metric_column(metric).label("value"),
            func.count(distinct(Sale.user_id)).label("unique_users"),
            func.percentile_cont(0.5).within_group(Sale.amount).label("median"),
        ]
        group_columns: list[ColumnElement[Any]] = [bucket]

        group_key: ColumnElement[Any] | None = None
        if group_by == GroupBy.USER:
            group_key = Sale.user_id  # type: ignore[assignment]
        elif group_by == GroupBy.GROUP:
            group_key = UserGroup.group_id  # type: ignore[assignment]
        elif group_by == GroupBy.DATE:
            group_key = Sale.date  # type: ignore[assignment]

        if group_key is not None:
            columns.append(group_key.label("group_key"))
            group_columns.append(group_key)

        stmt = select(*columns).where(Sale.date >= start_date, Sale.date <= end_date)
        if group_by == GroupBy.GROUP:
            stmt = stmt.outerjoin(UserGroup, UserGroup.user_id == Sale.user_id)

        return stmt.group_by(*group_columns).order_by(bucket)

    @staticmethod
    def row_to_bucket(row: Row[Any]) -> Bucket:
        """Map a query row, normalizing driver types."""
        period = row.period
        if isinstance(period, datetime.datetime):
            period = period.date()

        group_key = getattr(row, "group_key", None)
        if isinstance(group_key, datetime.date):
            group_key = group_key.isoformat()

        return Bucket(
            period=period,
            value=float(row.value or 0),
            unique_users=int(row.unique_users or 0),
            median=float(row.median or 0),
            group_key=None if group_key is None else str(group_key),
        )

    async def aggregate(
        self,
        period: TimePeriod,
        metric: Metric,
        start_date: datetime.date,
        end_date: datetime.date,
        group_by: GroupBy | None = None,
    ) -> list[TimeSeriesPoint]:
        """Compute the decorated series, most recent period first.

        Args:
            period: Bucket granularity.
            metric: Aggregate over sale amounts.
            start_date: First day included.
            end_date: Last day included.
            group_by: Optional secondary grouping.

        Returns:
            Time-series points; empty when no sales fall in the range.
        """
        stmt = self.build_query(period, metric, start_date, end_date, group_by)
        rows = await self.store.fetch_all(stmt)
        points = apply_deltas([self.row_to_bucket(row) for row in rows])

        logger.debug(
            "analytics.timeseries_aggregated",
            period=period.value,
            metric=metric.value,
            group_by=group_by.value if group_by else None,
            buckets=len(points),
        )
        return points
