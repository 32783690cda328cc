"""Tests for time-series aggregation, deltas and trend."""

from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.dialects import postgresql

from app.features.analytics.schemas import GroupBy, Metric, TimePeriod, Trend
from app.features.analytics.timeseries import (
    Bucket,
    TimeSeriesAggregator,
    apply_deltas,
    calculate_summary,
    calculate_trend,
)
from app.features.sales.store import SalesStore


class TestApplyDeltas:
    """Tests for period-over-period deltas."""

    def test_output_is_most_recent_first(self, monthly_buckets):
        points = apply_deltas(monthly_buckets)

        assert [p.period for p in points] == [
            date(2024, 3, 1),
            date(2024, 2, 1),
            date(2024, 1, 1),
        ]

    def test_deltas_against_previous_period(self, monthly_buckets):
        march, february, january = apply_deltas(monthly_buckets)

        assert february.previous_value == 100.0
        assert february.change == 50.0
        assert february.percent_change == 50.0
        assert march.change == 0.0
        assert march.percent_change == 0.0

    def test_earliest_bucket_reports_zeros(self, monthly_buckets):
        january = apply_deltas(monthly_buckets)[-1]

        assert january.previous_value == 0.0
        assert january.change == 0.0
        assert january.percent_change == 0.0

    def test_zero_previous_value_gives_zero_percent(self):
        points = apply_deltas(
            [
                Bucket(period=date(2024, 1, 1), value=0.0, unique_users=0, median=0.0),
                Bucket(period=date(2024, 2, 1), value=80.0, unique_users=1, median=80.0),
            ]
        )

        assert points[0].change == 80.0
        assert points[0].percent_change == 0.0

    def test_deltas_computed_per_group(self):
        points = apply_deltas(
            [
                Bucket(date(2024, 1, 1), 100.0, 1, 100.0, group_key="1"),
                Bucket(date(2024, 1, 1), 10.0, 1, 10.0, group_key="2"),
                Bucket(date(2024, 2, 1), 120.0, 1, 120.0, group_key="1"),
                Bucket(date(2024, 2, 1), 5.0, 1, 5.0, group_key="2"),
            ]
        )

        by_key = {(p.period, p.group_key): p for p in points}
        assert by_key[(date(2024, 2, 1), "1")].change == 20.0
        assert by_key[(date(2024, 2, 1), "2")].change == -5.0
        assert by_key[(date(2024, 2, 1), "2")].percent_change == -50.0

    def test_empty(self):
        assert apply_deltas([]) == []


class TestCalculateTrend:
    """Tests for half-over-half trend classification."""

    def test_single_value_is_stable(self):
        assert calculate_trend([100.0]) == Trend.STABLE

    def test_increasing(self):
        assert calculate_trend([100.0, 100.0, 120.0, 120.0]) == Trend.INCREASING

    def test_decreasing(self):
        assert calculate_trend([100.0, 100.0, 80.0, 80.0]) == Trend.DECREASING

    @pytest.mark.parametrize(
        ("values", "expected"),
        [
            ([100.0, 100.0], Trend.STABLE),
            ([100.0, 111.0], Trend.INCREASING),
            ([100.0, 89.0], Trend.DECREASING),
        ],
    )
    def test_two_point_series(self, values, expected):
        assert calculate_trend(values) == expected

    def test_exactly_ten_percent_is_stable(self):
        assert calculate_trend([100.0, 110.0]) == Trend.STABLE
        assert calculate_trend([100.0, 90.0]) == Trend.STABLE

    def test_odd_length_middle_joins_second_half(self):
        # first half [100], second half [100, 130] -> mean 115 -> +15%
        assert calculate_trend([100.0, 100.0, 130.0]) == Trend.INCREASING

    def test_zero_first_half(self):
        assert calculate_trend([0.0, 5.0]) == Trend.INCREASING
        assert calculate_trend([0.0, 0.0]) == Trend.STABLE


class TestCalculateSummary:
    """Tests for series summary."""

    def test_summary(self, monthly_buckets):
        summary = calculate_summary(apply_deltas(monthly_buckets))

        assert summary.total == 400.0
        assert summary.average == pytest.approx(133.333, rel=1e-3)
        assert summary.min == 100.0
        assert summary.max == 150.0
        assert summary.count == 3
        assert summary.trend == Trend.INCREASING

    def test_empty_summary(self):
        summary = calculate_summary([])

        assert summary.count == 0
        assert summary.total == 0.0
        assert summary.trend == Trend.STABLE


class TestTimeSeriesAggregator:
    """Tests for query construction and row mapping."""

    def test_query_truncates_by_inline_unit(self):
        stmt = TimeSeriesAggregator.build_query(
            TimePeriod.WEEK, Metric.AVG, date(2024, 1, 1), date(2024, 3, 31)
        )
        sql = str(stmt.compile(dialect=postgresql.dialect()))

        assert "date_trunc('week', sale.date)" in sql
        assert "avg(sale.amount)" in sql
        assert "percentile_cont" in sql
        assert "GROUP BY date_trunc('week', sale.date)" in sql

    def test_query_group_by_group_joins_membership(self):
        stmt = TimeSeriesAggregator.build_query(
            TimePeriod.MONTH,
            Metric.SUM,
            date(2024, 1, 1),
            date(2024, 3, 31),
            group_by=GroupBy.GROUP,
        )
        sql = str(stmt.compile(dialect=postgresql.dialect()))

        assert "LEFT OUTER JOIN user_group" in sql
        assert "user_group.group_id AS group_key" in sql

    def test_row_to_bucket_normalizes_types(self):
        row = SimpleNamespace(
            period=datetime(2024, 1, 1, 0, 0),
            value=None,
            unique_users=None,
            median=None,
            group_key=date(2024, 1, 3),
        )

        bucket = TimeSeriesAggregator.row_to_bucket(row)

        assert bucket.period == date(2024, 1, 1)
        assert bucket.value == 0.0
        assert bucket.group_key == "2024-01-03"

    @pytest.mark.asyncio
    async def test_aggregate(self, mock_session, make_result):
        mock_session.execute = AsyncMock(
            return_value=make_result(
                rows=[
                    SimpleNamespace(
                        period=datetime(2024, 1, 1), value=100, unique_users=2, median=50
                    ),
                    SimpleNamespace(
                        period=datetime(2024, 2, 1), value=150, unique_users=3, median=60
                    ),
                ]
            )
        )

        points = await TimeSeriesAggregator(SalesStore(mock_session)).aggregate(
            TimePeriod.MONTH, Metric.SUM, date(2024, 1, 1), date(2024, 2, 29)
        )

        assert [p.value for p in points] == [150.0, 100.0]
        assert points[0].percent_change == 50.0

    @pytest.mark.asyncio
    async def test_aggregate_no_data(self, mock_session, make_result):
        mock_session.execute = AsyncMock(return_value=make_result(rows=[]))

        points = await TimeSeriesAggregator(SalesStore(mock_session)).aggregate(
            TimePeriod.DAY, Metric.COUNT, date(2024, 1, 1), date(2024, 1, 7)
        )

        assert points == []
