"""Test fixtures for the sales module."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from app.features.analytics.service import AnalyticsService, get_analytics_service
from app.features.sales.schemas import ExportRow, SalePage, SaleRow
from app.main import app


@pytest.fixture
def sample_sale() -> SaleRow:
    """Create a sample sale row for testing."""
    return SaleRow(
        id=1,
        user_id=10,
        user_name="Ana Lopez",
        user_role="rep",
        amount=Decimal("250.00"),
        date=date(2024, 3, 15),
        groups=["North"],
    )


@pytest.fixture
def sample_export_rows() -> list[ExportRow]:
    return [
        ExportRow(
            id=1,
            user_id=10,
            user_name="Ana Lopez",
            role="rep",
            amount=Decimal("250.00"),
            date=date(2024, 3, 15),
            groups="North",
        )
    ]


@pytest.fixture
def service(mock_db, sample_sale) -> AsyncMock:
    """Override the analytics service dependency with a mock."""
    mock = AsyncMock(spec=AnalyticsService)
    mock.list_sales.return_value = SalePage(rows=[sample_sale], total=45)
    mock.get_sale_by_id.return_value = sample_sale

    app.dependency_overrides[get_analytics_service] = lambda: mock
    yield mock
    app.dependency_overrides.pop(get_analytics_service, None)
