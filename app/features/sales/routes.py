"""API routes for sales listing, lookup, export and statistics."""

from datetime import date
from decimal import Decimal

import pydantic
from fastapi import APIRouter, Depends, Path, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db
from app.core.exceptions import NotFoundError, ValidationError
from app.core.logging import get_logger
from app.features.analytics.service import AnalyticsService, get_analytics_service
from app.features.sales.export import MEDIA_TYPES, serialize
from app.features.sales.schemas import (
    ExportFormat,
    GroupStatistics,
    PaginationInfo,
    SaleListResponse,
    SaleRow,
    SalesFilter,
    UserStatistics,
)

logger = get_logger(__name__)

router = APIRouter(tags=["sales"])

_settings = get_settings()


def sales_filter_params(
    start_date: date | None = Query(
        None,
        description="Earliest sale date (inclusive). Format: YYYY-MM-DD.",
    ),
    end_date: date | None = Query(
        None,
        description="Latest sale date (inclusive). Format: YYYY-MM-DD.",
    ),
    user_id: int | None = Query(None, gt=0, description="Only sales by this user."),
    group_id: int | None = Query(
        None,
        gt=0,
        description="Only sales by members of this group.",
    ),
    min_amount: Decimal | None = Query(None, ge=0, description="Minimum amount (inclusive)."),
    max_amount: Decimal | None = Query(None, ge=0, description="Maximum amount (inclusive)."),
    sort_by: str = Query(
        "date",
        description="Sort field: date, amount or user. Unknown values sort by date.",
    ),
    sort_order: str = Query("desc", description="Sort direction: asc or desc."),
    limit: int = Query(
        _settings.pagination_default_limit,
        ge=1,
        le=_settings.pagination_max_limit,
        description="Maximum rows to return.",
    ),
    offset: int = Query(0, ge=0, description="Rows to skip."),
) -> SalesFilter:
    """Collect query parameters into a validated filter.

    Raises:
        ValidationError: If date or amount bounds are inverted.
    """
    try:
        return SalesFilter(
            start_date=start_date,
            end_date=end_date,
            user_id=user_id,
            group_id=group_id,
            min_amount=min_amount,
            max_amount=max_amount,
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            offset=offset,
        )
    except pydantic.ValidationError as e:
        raise ValidationError(
            message="Invalid sales filter",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e


# =============================================================================
# Sales
# =============================================================================


@router.get(
    "/sales",
    response_model=SaleListResponse,
    summary="List sales",
    description="""
List sales with filtering, sorting and pagination.

Each row carries the seller's name and role and the names of the seller's
groups. `pagination.total` counts every matching sale, ignoring `limit` and
`offset`; `has_more` is true when rows exist past this page.

Results are cached for five minutes per distinct filter.
""",
)
async def list_sales(
    sales_filter: SalesFilter = Depends(sales_filter_params),
    db: AsyncSession = Depends(get_db),
    service: AnalyticsService = Depends(get_analytics_service),
) -> SaleListResponse:
    """List one page of sales.

    Args:
        sales_filter: Filter built from query parameters.
        db: Database session.
        service: Analytics service.

    Returns:
        Rows and pagination info.
    """
    page = await service.list_sales(db, sales_filter)
    return SaleListResponse(
        data=page.rows,
        pagination=PaginationInfo(
            total=page.total,
            limit=sales_filter.limit,
            offset=sales_filter.offset,
            has_more=page.has_more(sales_filter.limit, sales_filter.offset),
        ),
    )


@router.get(
    "/sales/export",
    summary="Export sales",
    description="""
Export every sale matching the filter as CSV or JSON.

Pagination parameters are ignored. Exports are never cached.
""",
    responses={
        200: {
            "content": {"text/csv": {}, "application/json": {}},
            "description": "Serialized sales rows.",
        }
    },
)
async def export_sales(
    export_format: ExportFormat = Query(
        ExportFormat.CSV,
        alias="format",
        description="Output format: csv or json.",
    ),
    sales_filter: SalesFilter = Depends(sales_filter_params),
    db: AsyncSession = Depends(get_db),
    service: AnalyticsService = Depends(get_analytics_service),
) -> Response:
    """Serialize matching sales for download."""
    rows = await service.export_rows(db, sales_filter)
    filename = f"sales_{date.today().isoformat()}.{export_format.value}"

    return Response(
        content=serialize(rows, export_format),
        media_type=MEDIA_TYPES[export_format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/sales/{sale_id}",
    response_model=SaleRow,
    summary="Get sale by ID",
)
async def get_sale(
    sale_id: int = Path(..., gt=0, description="Sale identifier."),
    db: AsyncSession = Depends(get_db),
    service: AnalyticsService = Depends(get_analytics_service),
) -> SaleRow:
    """Look up one sale.

    Raises:
        NotFoundError: If the sale does not exist.
    """
    sale = await service.get_sale_by_id(db, sale_id)
    if sale is None:
        raise NotFoundError(
            message=f"Sale not found: {sale_id}",
            details={"sale_id": sale_id},
        )
    return sale


# =============================================================================
# Statistics
# =============================================================================


@router.get(
    "/users/{user_id}/stats",
    response_model=UserStatistics,
    summary="User sales statistics",
)
async def get_user_statistics(
    user_id: int = Path(..., gt=0, description="User identifier."),
    db: AsyncSession = Depends(get_db),
    service: AnalyticsService = Depends(get_analytics_service),
) -> UserStatistics:
    """Lifetime statistics of one user.

    Raises:
        NotFoundError: If the user does not exist.
    """
    stats = await service.get_user_statistics(db, user_id)
    if stats is None:
        raise NotFoundError(
            message=f"User not found: {user_id}",
            details={"user_id": user_id},
        )
    return stats


@router.get(
    "/groups/{group_id}/stats",
    response_model=GroupStatistics,
    summary="Group sales statistics",
)
async def get_group_statistics(
    group_id: int = Path(..., gt=0, description="Group identifier."),
    db: AsyncSession = Depends(get_db),
    service: AnalyticsService = Depends(get_analytics_service),
) -> GroupStatistics:
    """Statistics over one group's members.

    Raises:
        NotFoundError: If the group does not exist.
    """
    stats = await service.get_group_statistics(db, group_id)
    if stats is None:
        raise NotFoundError(
            message=f"Group not found: {group_id}",
            details={"group_id": group_id},
        )
    return stats
