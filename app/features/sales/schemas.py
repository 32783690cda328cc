"""Pydantic schemas for sales listing, lookup, statistics and export."""

import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# =============================================================================
# Enums
# =============================================================================


class SortField(str, Enum):
    """Sortable fields exposed to callers."""

    DATE = "date"
    AMOUNT = "amount"
    USER = "user"


class SortOrder(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class ExportFormat(str, Enum):
    """Serialization formats for sales export."""

    CSV = "csv"
    JSON = "json"


# =============================================================================
# Filter
# =============================================================================


class SalesFilter(BaseModel):
    """Immutable filter for sales listing and export.

    Every optional field that is set adds one predicate; unset fields add
    none. Sort hints outside the allow-list fall back to the defaults rather
    than failing.
    """

    model_config = ConfigDict(frozen=True)

    start_date: datetime.date | None = Field(None, description="Earliest sale date (inclusive).")
    end_date: datetime.date | None = Field(None, description="Latest sale date (inclusive).")
    user_id: int | None = Field(None, gt=0, description="Only sales by this user.")
    group_id: int | None = Field(None, gt=0, description="Only sales by members of this group.")
    min_amount: Decimal | None = Field(None, ge=0, description="Minimum sale amount (inclusive).")
    max_amount: Decimal | None = Field(None, ge=0, description="Maximum sale amount (inclusive).")
    sort_by: SortField = Field(SortField.DATE, description="Sort field.")
    sort_order: SortOrder = Field(SortOrder.DESC, description="Sort direction.")
    limit: int = Field(20, ge=0, description="Maximum rows to return.")
    offset: int = Field(0, ge=0, description="Rows to skip before returning.")

    @field_validator("sort_by", mode="before")
    @classmethod
    def fallback_sort_field(cls, v: object) -> object:
        """Map unknown sort fields to the default instead of rejecting them."""
        if isinstance(v, SortField):
            return v
        try:
            return SortField(str(v).lower())
        except ValueError:
            return SortField.DATE

    @field_validator("sort_order", mode="before")
    @classmethod
    def normalize_sort_order(cls, v: object) -> object:
        """Accept asc/desc in any case; anything else means descending."""
        if isinstance(v, SortOrder):
            return v
        return SortOrder.ASC if str(v).lower() == "asc" else SortOrder.DESC

    @model_validator(mode="after")
    def validate_ranges(self) -> "SalesFilter":
        """Ensure date and amount bounds are ordered."""
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.max_amount < self.min_amount
        ):
            raise ValueError("max_amount must be >= min_amount")
        return self


# =============================================================================
# Rows
# =============================================================================


class SaleRow(BaseModel):
    """A sale joined with its seller and the seller's groups."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    user_id: int
    user_name: str
    user_role: str | None = None
    amount: Decimal
    date: datetime.date
    groups: list[str] = Field(default_factory=list)


class SalePage(BaseModel):
    """One page of sales plus the unpaginated match count."""

    model_config = ConfigDict(frozen=True)

    rows: list[SaleRow]
    total: int = Field(..., ge=0)

    def has_more(self, limit: int, offset: int) -> bool:
        """Whether rows beyond this page exist."""
        return self.total > offset + limit


class PaginationInfo(BaseModel):
    """Pagination block of a listing response."""

    total: int = Field(..., ge=0)
    limit: int = Field(..., ge=0)
    offset: int = Field(..., ge=0)
    has_more: bool


class SaleListResponse(BaseModel):
    """Sales listing response."""

    data: list[SaleRow]
    pagination: PaginationInfo


class ExportRow(BaseModel):
    """Flat sale row for CSV/JSON export."""

    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    user_name: str
    role: str | None = None
    amount: Decimal
    date: datetime.date
    groups: str = ""


# =============================================================================
# Statistics
# =============================================================================


class UserStatistics(BaseModel):
    """Lifetime sales statistics of one user."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    role: str | None = None
    total_sales: int = Field(..., ge=0, description="Number of sales.")
    total_revenue: float
    avg_sale_amount: float
    min_sale: float
    max_sale: float
    first_sale_date: datetime.date | None = None
    last_sale_date: datetime.date | None = None
    groups: list[str] = Field(default_factory=list)


class GroupStatistics(BaseModel):
    """Sales statistics aggregated over a group's members."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    user_count: int = Field(..., ge=0)
    total_sales: int = Field(..., ge=0, description="Number of sales.")
    total_revenue: float
    avg_sale_amount: float
    users: list[str] = Field(default_factory=list)
