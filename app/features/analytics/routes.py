"""API routes for time-series analytics and leaderboards."""

from datetime import date

import pydantic
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.core.logging import get_logger
from app.features.analytics.schemas import (
    AnalyticsParams,
    AnalyticsResponse,
    GroupBy,
    LeaderboardParams,
    LeaderboardResponse,
    Metric,
    TimePeriod,
)
from app.features.analytics.service import AnalyticsService, get_analytics_service

logger = get_logger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])

_settings = get_settings()


# =============================================================================
# Time Series
# =============================================================================


@router.get(
    "",
    response_model=AnalyticsResponse,
    summary="Compute sales time series",
    description="""
Aggregate sales into calendar periods and compare each period with the one
before it.

**Metrics**: `sum`, `avg`, `count`, `max`, `min` over sale amounts.

**Periods**: `day`, `week` (Monday start), `month`, `quarter`, `year`.

**Grouping**: `group_by=user|group|date` splits each period further; deltas
are computed within each group.

**Date Range**:
- `end_date` defaults to today
- `start_date` defaults to 30 days before `end_date`

Each point carries `previous_value`, `change` and `percent_change` against
the preceding period; the earliest period reports zeros. The summary trend
compares the mean of the second half of the series with the first half
(more than 10% either way counts as a trend).

Results are cached for ten minutes.
""",
)
async def get_analytics(
    period: TimePeriod = Query(TimePeriod.MONTH, description="Bucket granularity."),
    metric: Metric = Query(Metric.SUM, description="Aggregate over sale amounts."),
    start_date: date | None = Query(
        None,
        description="First day included. Format: YYYY-MM-DD.",
    ),
    end_date: date | None = Query(
        None,
        description="Last day included. Format: YYYY-MM-DD.",
    ),
    group_by: GroupBy | None = Query(None, description="Optional secondary grouping."),
    db: AsyncSession = Depends(get_db),
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResponse:
    """Compute a time series with period-over-period deltas.

    Args:
        period: Bucket granularity.
        metric: Aggregate function.
        start_date: Start of range (optional).
        end_date: End of range (optional).
        group_by: Secondary grouping (optional).
        db: Database session.
        service: Analytics service.

    Returns:
        Series, most recent period first, with summary.

    Raises:
        ValidationError: If end_date precedes start_date.
    """
    try:
        params = AnalyticsParams(
            period=period,
            metric=metric,
            start_date=start_date,
            end_date=end_date,
            group_by=group_by,
        )
    except pydantic.ValidationError as e:
        raise ValidationError(
            message="Invalid analytics parameters",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e

    return await service.get_analytics(db, params)


# =============================================================================
# Leaderboard
# =============================================================================


@router.get(
    "/leaderboard",
    response_model=LeaderboardResponse,
    summary="Rank sellers",
    description="""
Rank sellers by total sales amount within one calendar period.

The window is the period containing `reference_date`, which defaults to the
date of the most recent sale. Sellers without sales in the window are not
ranked. Ties share a rank and the following rank skips (1, 1, 3).

`percentile` is the share of ranked sellers with a strictly lower total.

Results are cached for five minutes.
""",
)
async def get_leaderboard(
    period: TimePeriod = Query(TimePeriod.MONTH, description="Window length."),
    limit: int = Query(
        _settings.leaderboard_default_limit,
        ge=1,
        le=_settings.leaderboard_max_limit,
        description="Maximum entries to return.",
    ),
    group_id: int | None = Query(None, gt=0, description="Only rank members of this group."),
    reference_date: date | None = Query(
        None,
        description="Date inside the window. Defaults to the latest sale date.",
    ),
    db: AsyncSession = Depends(get_db),
    service: AnalyticsService = Depends(get_analytics_service),
) -> LeaderboardResponse:
    """Rank sellers for one period window."""
    params = LeaderboardParams(
        period=period,
        limit=limit,
        group_id=group_id,
        reference_date=reference_date,
    )
    entries = await service.get_leaderboard(db, params)
    return LeaderboardResponse(period=period, data=entries)
