"""Query builders for sales listing, lookup, export and statistics.

Statements are assembled from typed SQLAlchemy clauses; every user-supplied
value travels as a bound parameter and sort hints are resolved through
``SORT_COLUMNS`` so no caller input is ever spliced into SQL text.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, Row, Select, distinct, func, literal, select
from sqlalchemy.orm import aliased

from app.features.sales.models import Group, Sale, User, UserGroup
from app.features.sales.schemas import (
    ExportRow,
    GroupStatistics,
    SaleRow,
    SalesFilter,
    SortField,
    SortOrder,
    UserStatistics,
)

# Allow-list of sortable fields -> real columns.
SORT_COLUMNS: dict[str, ColumnElement[Any]] = {
    SortField.DATE.value: Sale.date,  # type: ignore[dict-item]
    SortField.AMOUNT.value: Sale.amount,  # type: ignore[dict-item]
    SortField.USER.value: User.name,  # type: ignore[dict-item]
}
DEFAULT_SORT_FIELD = SortField.DATE


def resolve_sort_column(sort_by: SortField | str | None) -> ColumnElement[Any]:
    """Map a sort hint to its column, falling back to the default field."""
    key = sort_by.value if isinstance(sort_by, SortField) else str(sort_by or "").lower()
    return SORT_COLUMNS.get(key, SORT_COLUMNS[DEFAULT_SORT_FIELD.value])


def resolve_sort_order(sort_order: SortOrder | str | None) -> SortOrder:
    """Ascending only when explicitly asked for, case-insensitively."""
    value = sort_order.value if isinstance(sort_order, SortOrder) else str(sort_order or "")
    return SortOrder.ASC if value.lower() == SortOrder.ASC.value else SortOrder.DESC


def clean_names(values: Iterable[str | None] | None) -> list[str]:
    """Drop NULL placeholders and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for value in values or ():
        if value is not None:
            seen.setdefault(value, None)
    return list(seen)


def member_of_group(group_id: int) -> ColumnElement[bool]:
    """Predicate: the sale's seller belongs to ``group_id``.

    Membership is read through an alias so the subquery keeps its own
    FROM even when the outer query already joins ``user_group``.
    """
    membership = aliased(UserGroup)
    return (
        select(membership.user_id)
        .where(membership.user_id == Sale.user_id, membership.group_id == group_id)
        .correlate(Sale)
        .exists()
    )


# =============================================================================
# Listing / export
# =============================================================================


@dataclass(frozen=True)
class SalesQuery:
    """Query descriptor for one page of sales.

    Attributes:
        statement: Filtered, sorted, paginated row query.
        count_statement: Count of filtered rows, ignoring pagination.
        limit: Page size applied to ``statement``.
        offset: Rows skipped by ``statement``.
    """

    statement: Select[Any]
    count_statement: Select[Any]
    limit: int
    offset: int


def _sales_select() -> Select[Any]:
    """Sale rows joined with seller and aggregated group names."""
    return (
        select(
            Sale.id,
            Sale.user_id,
            User.name.label("user_name"),
            User.role.label("user_role"),
            Sale.amount,
            Sale.date,
            func.array_agg(distinct(Group.name)).label("groups"),
        )
        .join(User, Sale.user_id == User.id)
        .outerjoin(UserGroup, UserGroup.user_id == User.id)
        .outerjoin(Group, Group.id == UserGroup.group_id)
        .group_by(Sale.id, Sale.user_id, Sale.amount, Sale.date, User.id, User.name, User.role)
    )


class SalesQueryBuilder:
    """Translate a SalesFilter into predicates, sort and pagination.

    Each set filter field contributes exactly one ``AND`` predicate;
    pagination is applied after filtering and sorting.
    """

    def __init__(self, sales_filter: SalesFilter) -> None:
        self.filter = sales_filter

    def predicates(self) -> list[ColumnElement[bool]]:
        """Predicates for every filter field that is set."""
        f = self.filter
        clauses: list[ColumnElement[bool]] = []

        if f.start_date is not None:
            clauses.append(Sale.date >= f.start_date)
        if f.end_date is not None:
            clauses.append(Sale.date <= f.end_date)
        if f.user_id is not None:
            clauses.append(Sale.user_id == f.user_id)
        if f.group_id is not None:
            clauses.append(member_of_group(f.group_id))
        if f.min_amount is not None:
            clauses.append(Sale.amount >= f.min_amount)
        if f.max_amount is not None:
            clauses.append(Sale.amount <= f.max_amount)

        return clauses

    def order_by(self) -> list[ColumnElement[Any]]:
        """Sort clause with ``sale.id`` as a tiebreaker for stable pages."""
        column = resolve_sort_column(self.filter.sort_by)
        if resolve_sort_order(self.filter.sort_order) == SortOrder.ASC:
            return [column.asc(), Sale.id.asc()]
        return [column.desc(), Sale.id.desc()]

    def build(self) -> SalesQuery:
        """Build the paginated listing query and its count query."""
        predicates = self.predicates()

        statement = (
            _sales_select()
            .where(*predicates)
            .order_by(*self.order_by())
            .offset(self.filter.offset)
            .limit(self.filter.limit)
        )
        count_statement = (
            select(func.count(Sale.id)).join(User, Sale.user_id == User.id).where(*predicates)
        )

        return SalesQuery(
            statement=statement,
            count_statement=count_statement,
            limit=self.filter.limit,
            offset=self.filter.offset,
        )

    def build_export(self) -> Select[Any]:
        """Build the unpaginated export query (groups joined as text)."""
        return (
            select(
                Sale.id,
                Sale.user_id,
                User.name.label("user_name"),
                User.role.label("role"),
                Sale.amount,
                Sale.date,
                func.string_agg(Group.name, literal(", ")).label("groups"),
            )
            .join(User, Sale.user_id == User.id)
            .outerjoin(UserGroup, UserGroup.user_id == User.id)
            .outerjoin(Group, Group.id == UserGroup.group_id)
            .where(*self.predicates())
            .group_by(Sale.id, Sale.user_id, User.name, User.role, Sale.amount, Sale.date)
            .order_by(*self.order_by())
        )


# =============================================================================
# Single-record lookups
# =============================================================================


def build_sale_lookup(sale_id: int) -> Select[Any]:
    """Query for one sale by primary key."""
    return _sales_select().where(Sale.id == sale_id)


def build_latest_sale_date() -> Select[Any]:
    """Query for the most recent sale date (NULL when there are no sales)."""
    return select(func.max(Sale.date))


def build_user_statistics(user_id: int) -> Select[Any]:
    """Lifetime statistics for one user.

    Sales are aggregated in a subquery and groups in a correlated one so
    group memberships never multiply the sale totals.
    """
    sales = (
        select(
            Sale.user_id,
            func.count(Sale.id).label("total_sales"),
            func.sum(Sale.amount).label("total_revenue"),
            func.avg(Sale.amount).label("avg_sale_amount"),
            func.min(Sale.amount).label("min_sale"),
            func.max(Sale.amount).label("max_sale"),
            func.min(Sale.date).label("first_sale_date"),
            func.max(Sale.date).label("last_sale_date"),
        )
        .where(Sale.user_id == user_id)
        .group_by(Sale.user_id)
        .subquery()
    )
    groups = (
        select(func.array_agg(distinct(Group.name)))
        .select_from(UserGroup)
        .join(Group, Group.id == UserGroup.group_id)
        .where(UserGroup.user_id == User.id)
        .scalar_subquery()
    )

    return (
        select(
            User.id,
            User.name,
            User.role,
            func.coalesce(sales.c.total_sales, 0).label("total_sales"),
            func.coalesce(sales.c.total_revenue, 0).label("total_revenue"),
            func.coalesce(sales.c.avg_sale_amount, 0).label("avg_sale_amount"),
            func.coalesce(sales.c.min_sale, 0).label("min_sale"),
            func.coalesce(sales.c.max_sale, 0).label("max_sale"),
            sales.c.first_sale_date,
            sales.c.last_sale_date,
            groups.label("groups"),
        )
        .outerjoin(sales, sales.c.user_id == User.id)
        .where(User.id == user_id)
    )


def _member_sales(aggregate: ColumnElement[Any]) -> ColumnElement[Any]:
    """Correlated aggregate over sales made by members of the outer group."""
    return (
        select(aggregate)
        .select_from(Sale)
        .join(UserGroup, UserGroup.user_id == Sale.user_id)
        .where(UserGroup.group_id == Group.id)
        .scalar_subquery()
    )


def build_group_statistics(group_id: int) -> Select[Any]:
    """Aggregated statistics over the members of one group."""
    user_count = (
        select(func.count(UserGroup.user_id))
        .where(UserGroup.group_id == Group.id)
        .scalar_subquery()
    )
    users = (
        select(func.array_agg(distinct(User.name)))
        .select_from(UserGroup)
        .join(User, User.id == UserGroup.user_id)
        .where(UserGroup.group_id == Group.id)
        .scalar_subquery()
    )

    return select(
        Group.id,
        Group.name,
        user_count.label("user_count"),
        _member_sales(func.count(Sale.id)).label("total_sales"),
        func.coalesce(_member_sales(func.sum(Sale.amount)), 0).label("total_revenue"),
        func.coalesce(_member_sales(func.avg(Sale.amount)), 0).label("avg_sale_amount"),
        users.label("users"),
    ).where(Group.id == group_id)


# =============================================================================
# Row mappers
# =============================================================================


def row_to_sale(row: Row[Any]) -> SaleRow:
    """Map a listing/lookup row to a SaleRow."""
    return SaleRow(
        id=row.id,
        user_id=row.user_id,
        user_name=row.user_name,
        user_role=row.user_role,
        amount=row.amount,
        date=row.date,
        groups=clean_names(row.groups),
    )


def row_to_export(row: Row[Any]) -> ExportRow:
    """Map an export row to an ExportRow."""
    return ExportRow(
        id=row.id,
        user_id=row.user_id,
        user_name=row.user_name,
        role=row.role,
        amount=row.amount,
        date=row.date,
        groups=row.groups or "",
    )


def row_to_user_statistics(row: Row[Any]) -> UserStatistics:
    """Map a user statistics row."""
    return UserStatistics(
        id=row.id,
        name=row.name,
        role=row.role,
        total_sales=int(row.total_sales),
        total_revenue=float(row.total_revenue),
        avg_sale_amount=float(row.avg_sale_amount),
        min_sale=float(row.min_sale),
        max_sale=float(row.max_sale),
        first_sale_date=row.first_sale_date,
        last_sale_date=row.last_sale_date,
        groups=clean_names(row.groups),
    )


def row_to_group_statistics(row: Row[Any]) -> GroupStatistics:
    """Map a group statistics row."""
    return GroupStatistics(
        id=row.id,
        name=row.name,
        user_count=int(row.user_count or 0),
        total_sales=int(row.total_sales or 0),
        total_revenue=float(row.total_revenue),
        avg_sale_amount=float(row.avg_sale_amount),
        users=clean_names(row.users),
    )
