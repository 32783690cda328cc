"""Calendar arithmetic for period buckets.

Truncation follows PostgreSQL ``date_trunc``: weeks start on Monday,
quarters on January, April, July and October.
"""

import calendar
import datetime

from app.features.analytics.schemas import TimePeriod

# date_trunc field names, keyed by period.
TRUNCATE_UNITS: dict[TimePeriod, str] = {
    TimePeriod.DAY: "day",
    TimePeriod.WEEK: "week",
    TimePeriod.MONTH: "month",
    TimePeriod.QUARTER: "quarter",
    TimePeriod.YEAR: "year",
}

_PERIOD_MONTHS = {
    TimePeriod.MONTH: 1,
    TimePeriod.QUARTER: 3,
    TimePeriod.YEAR: 12,
}


def truncate_date(value: datetime.date, period: TimePeriod) -> datetime.date:
    """Return the first day of the period containing ``value``.

    Args:
        value: Any date (datetimes are reduced to their date).
        period: Bucket granularity.

    Returns:
        Start date of the enclosing period.
    """
    if isinstance(value, datetime.datetime):
        value = value.date()

    if period == TimePeriod.DAY:
        return value
    if period == TimePeriod.WEEK:
        return value - datetime.timedelta(days=value.weekday())
    if period == TimePeriod.MONTH:
        return value.replace(day=1)
    if period == TimePeriod.QUARTER:
        return value.replace(month=3 * ((value.month - 1) // 3) + 1, day=1)
    return value.replace(month=1, day=1)


def _add_months(value: datetime.date, months: int) -> datetime.date:
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return datetime.date(year, month, day)


def add_period(value: datetime.date, period: TimePeriod) -> datetime.date:
    """Advance ``value`` by one period."""
    if period == TimePeriod.DAY:
        return value + datetime.timedelta(days=1)
    if period == TimePeriod.WEEK:
        return value + datetime.timedelta(weeks=1)
    return _add_months(value, _PERIOD_MONTHS[period])


def period_window(
    reference_date: datetime.date,
    period: TimePeriod,
) -> tuple[datetime.date, datetime.date]:
    """Half-open window ``[start, end)`` of the period containing the date."""
    start = truncate_date(reference_date, period)
    return start, add_period(start, period)
