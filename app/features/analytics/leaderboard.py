"""Seller leaderboard over one calendar period.

Per-seller totals are aggregated in SQL; ranking and percentiles are
computed here over the whole eligible population before the result is cut
down to the requested size.
"""

import datetime
from collections.abc import Sequence
from dataclasses import dataclass
from itertools import groupby
from operator import attrgetter
from typing import Any

from sqlalchemy import Row, Select, and_, func, select

from app.core.logging import get_logger
from app.features.analytics.periods import period_window
from app.features.analytics.schemas import LeaderboardEntry, TimePeriod
from app.features.sales.models import Sale, User
from app.features.sales.queries import build_latest_sale_date, member_of_group
from app.features.sales.store import SalesStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class SellerTotals:
    """Aggregates of one seller inside the ranking window."""

    user_id: int
    name: str
    role: str | None
    total_sales: float
    sale_count: int
    avg_sale: float
    max_sale: float


def rank_entries(totals: Sequence[SellerTotals]) -> list[LeaderboardEntry]:
    """Rank sellers by descending total.

    Sellers with a zero total are dropped. Ties share a rank and the next
    distinct total skips by the size of the tie (1, 1, 3). The percentile
    is the share of ranked sellers with a strictly lower total.

    Args:
        totals: Per-seller aggregates in any order.

    Returns:
        Entries ordered by rank.
    """
    eligible = sorted(
        (seller for seller in totals if seller.total_sales > 0),
        key=lambda seller: (-seller.total_sales, seller.user_id),
    )
    population = len(eligible)
    entries: list[LeaderboardEntry] = []
    position = 0

    for _, tied in groupby(eligible, key=attrgetter("total_sales")):
        members = list(tied)
        rank = position + 1
        lower = population - position - len(members)
        percentile = round(lower / population * 100, 2)

        for seller in members:
            entries.append(
                LeaderboardEntry(
                    rank=rank,
                    user_id=seller.user_id,
                    name=seller.name,
                    role=seller.role,
                    total_sales=seller.total_sales,
                    sale_count=seller.sale_count,
                    avg_sale=seller.avg_sale,
                    max_sale=seller.max_sale,
                    percentile=percentile,
                )
            )
        position += len(members)

    return entries


class LeaderboardRanker:
    """Builds the windowed aggregate and ranks its rows."""

    def __init__(self, store: SalesStore) -> None:
        self.store = store

    @staticmethod
    def build_query(
        start: datetime.date,
        end: datetime.date,
        group_id: int | None = None,
    ) -> Select[Any]:
        """Per-seller aggregates for sales in ``[start, end)``."""
        total = func.sum(Sale.amount)
        stmt = (
            select(
                User.id.label("user_id"),
                User.name,
                User.role,
                total.label("total_sales"),
                func.count(Sale.id).label("sale_count"),
                func.avg(Sale.amount).label("avg_sale"),
                func.max(Sale.amount).label("max_sale"),
            )
            .select_from(User)
            .join(
                Sale,
                and_(Sale.user_id == User.id, Sale.date >= start, Sale.date < end),
            )
        )
        if group_id is not None:
            stmt = stmt.where(member_of_group(group_id))

        return stmt.group_by(User.id, User.name, User.role).having(total > 0)

    @staticmethod
    def row_to_totals(row: Row[Any]) -> SellerTotals:
        return SellerTotals(
            user_id=row.user_id,
            name=row.name,
            role=row.role,
            total_sales=float(row.total_sales or 0),
            sale_count=int(row.sale_count or 0),
            avg_sale=float(row.avg_sale or 0),
            max_sale=float(row.max_sale or 0),
        )

    async def rank(
        self,
        period: TimePeriod,
        limit: int,
        group_id: int | None = None,
        reference_date: datetime.date | None = None,
    ) -> list[LeaderboardEntry]:
        """Rank sellers over the period containing ``reference_date``.

        Args:
            period: Window length; the window starts at the truncated
                reference date.
            limit: Maximum entries returned, applied after ranking.
            group_id: Only rank members of this group.
            reference_date: Date inside the window; defaults to the latest
                sale date.

        Returns:
            Ranked entries; empty when there are no sales at all.
        """
        if reference_date is None:
            reference_date = await self.store.scalar(build_latest_sale_date())
            if reference_date is None:
                logger.info("analytics.leaderboard_no_data", period=period.value)
                return []

        start, end = period_window(reference_date, period)
        rows = await self.store.fetch_all(self.build_query(start, end, group_id))
        entries = rank_entries([self.row_to_totals(row) for row in rows])

        logger.debug(
            "analytics.leaderboard_ranked",
            period=period.value,
            window_start=start.isoformat(),
            window_end=end.isoformat(),
            group_id=group_id,
            ranked=len(entries),
        )
        return entries[:limit]
