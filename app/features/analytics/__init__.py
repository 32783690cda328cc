"""Analytics module for time series, leaderboards and cached sales reads.

The service in this package is the single entry point for read operations:
it fronts the sales queries with the process-wide cache.
"""

from app.features.analytics.schemas import (
    AnalyticsParams,
    AnalyticsResponse,
    LeaderboardEntry,
    LeaderboardParams,
    TimePeriod,
)
from app.features.analytics.service import AnalyticsService

__all__ = [
    "AnalyticsParams",
    "AnalyticsResponse",
    "AnalyticsService",
    "LeaderboardEntry",
    "LeaderboardParams",
    "TimePeriod",
]
