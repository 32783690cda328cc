"""Pydantic schemas for time-series analytics and leaderboards."""

import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

# =============================================================================
# Enums
# =============================================================================


class TimePeriod(str, Enum):
    """Bucket granularity; also the leaderboard window length."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class Metric(str, Enum):
    """Aggregate computed per bucket over sale amounts."""

    SUM = "sum"
    AVG = "avg"
    COUNT = "count"
    MAX = "max"
    MIN = "min"


class GroupBy(str, Enum):
    """Secondary grouping dimension for time series."""

    USER = "user"
    GROUP = "group"
    DATE = "date"


class Trend(str, Enum):
    """Direction of a series, comparing its second half to its first."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


# =============================================================================
# Parameters
# =============================================================================


class AnalyticsParams(BaseModel):
    """Time-series request.

    Missing dates are filled in by the service before the cache key is
    derived, so callers omitting them share entries with callers passing
    the same effective range.
    """

    model_config = ConfigDict(frozen=True)

    period: TimePeriod = TimePeriod.MONTH
    metric: Metric = Metric.SUM
    start_date: datetime.date | None = None
    end_date: datetime.date | None = None
    group_by: GroupBy | None = None

    @model_validator(mode="after")
    def validate_date_range(self) -> "AnalyticsParams":
        """Ensure end_date >= start_date when both are given."""
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class LeaderboardParams(BaseModel):
    """Leaderboard request."""

    model_config = ConfigDict(frozen=True)

    period: TimePeriod = TimePeriod.MONTH
    limit: int = Field(10, ge=1, le=100)
    group_id: int | None = Field(None, gt=0)
    reference_date: datetime.date | None = None


# =============================================================================
# Results
# =============================================================================


class TimeSeriesPoint(BaseModel):
    """One bucket of a time series."""

    model_config = ConfigDict(frozen=True)

    period: datetime.date = Field(..., description="Start of the truncated period.")
    group_key: str | None = Field(
        None,
        description="Secondary grouping value when group_by is set.",
    )
    value: float = Field(..., description="Aggregated metric for the bucket.")
    unique_users: int = Field(..., ge=0, description="Distinct sellers in the bucket.")
    median: float = Field(..., description="Median sale amount (continuous percentile).")
    previous_value: float = Field(0.0, description="Value of the preceding bucket.")
    change: float = Field(0.0, description="value - previous_value.")
    percent_change: float = Field(0.0, description="change / previous_value * 100.")


class Summary(BaseModel):
    """Statistics over a whole series."""

    model_config = ConfigDict(frozen=True)

    total: float = 0.0
    average: float = 0.0
    min: float = 0.0
    max: float = 0.0
    count: int = 0
    trend: Trend = Trend.STABLE


class DateRange(BaseModel):
    """Inclusive date range actually queried."""

    start: datetime.date
    end: datetime.date


class AnalyticsResponse(BaseModel):
    """Time series with its summary."""

    model_config = ConfigDict(frozen=True)

    period: TimePeriod
    metric: Metric
    group_by: GroupBy | None = None
    date_range: DateRange
    data: list[TimeSeriesPoint] = Field(
        ...,
        description="Buckets, most recent period first.",
    )
    summary: Summary


class LeaderboardEntry(BaseModel):
    """One ranked seller."""

    model_config = ConfigDict(frozen=True)

    rank: int = Field(..., ge=1, description="Standard competition rank by total.")
    user_id: int
    name: str
    role: str | None = None
    total_sales: float
    sale_count: int = Field(..., ge=0)
    avg_sale: float
    max_sale: float
    percentile: float = Field(
        ...,
        ge=0,
        le=100,
        description="Share of ranked sellers with a strictly lower total.",
    )


class LeaderboardResponse(BaseModel):
    """Leaderboard wrapper returned over HTTP."""

    period: TimePeriod
    data: list[LeaderboardEntry]
