"""
Temporal Period Engine

Computes financial-month, week and year boundaries from a configurable
month-start day. Pure and stateless.

DESIGN DECISION: The financial month start day is clamped to 1-28 here,
even though user settings accept up to 31. Every calendar month has at
least 28 days, so periods never skip or overlap.
"""

from datetime import date, datetime, time, timedelta
from typing import Union

from dateutil.relativedelta import relativedelta

from ledger_core.models.entities import BudgetPeriod, to_naive_utc
from ledger_core.models.progress import PeriodRange


DateLike = Union[date, datetime]


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return to_naive_utc(value)
    return datetime.combine(value, time.min)


def _start_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_datetime(value).date(), time.min)


def _end_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_datetime(value).date(), time.max)


def clamp_start_day(day: int) -> int:
    """Clamp a month-start day to 1-28."""
    return max(1, min(28, int(day)))


def add_months(value: DateLike, months: int) -> datetime:
    """
    Shift a date by whole months, clamping to the target month's last day.

    Jan 31 + 1 month is Feb 28 (or 29), not Mar 3.
    """
    return _as_datetime(value) + relativedelta(months=months)


def financial_month_start_date(reference: DateLike, start_day: int) -> datetime:
    """
    Start of the financial month containing the reference date.

    Examples with a start day of 15:
        2024-12-20 -> 2024-12-15 (current period)
        2024-12-10 -> 2024-11-15 (previous period, since the 10th < the 15th)
    """
    day = clamp_start_day(start_day)
    reference = _as_datetime(reference)

    if day == 1:
        return datetime(reference.year, reference.month, 1)

    if reference.day >= day:
        return datetime(reference.year, reference.month, day)

    return add_months(datetime(reference.year, reference.month, day), -1)


def financial_month_end_date(reference: DateLike, start_day: int) -> datetime:
    """
    End of the financial month containing the reference date.

    One day before the next period starts, at end of day.
    """
    start = financial_month_start_date(reference, start_day)
    next_start = add_months(start, 1)
    return _end_of_day(next_start - timedelta(days=1))


def get_period_range(
    period: BudgetPeriod,
    reference: DateLike,
    financial_month_start: int = 1,
) -> PeriodRange:
    """
    Inclusive boundaries of the period containing the reference date.

    Args:
        period: weekly (Monday to Sunday), monthly (financial month)
            or yearly (calendar year)
        reference: Any moment inside the wanted period
        financial_month_start: Month start day, only used for monthly periods

    Returns:
        PeriodRange from start of the first day to end of the last day
    """
    period = BudgetPeriod(period)
    reference = _as_datetime(reference)

    if period == BudgetPeriod.WEEKLY:
        monday = reference.date() - timedelta(days=reference.weekday())
        return PeriodRange(
            start=_start_of_day(monday),
            end=_end_of_day(monday + timedelta(days=6)),
        )

    if period == BudgetPeriod.MONTHLY:
        return PeriodRange(
            start=financial_month_start_date(reference, financial_month_start),
            end=financial_month_end_date(reference, financial_month_start),
        )

    return PeriodRange(
        start=datetime(reference.year, 1, 1),
        end=_end_of_day(date(reference.year, 12, 31)),
    )


def days_between(start: DateLike, end: DateLike) -> int:
    """Calendar days between two dates, counting both ends. Minimum 1."""
    diff = (_as_datetime(end).date() - _as_datetime(start).date()).days
    return max(1, diff + 1)


def days_remaining(end: DateLike, reference: DateLike) -> int:
    """Days left until `end`, counting the end day itself. Minimum 0."""
    diff = (_as_datetime(end).date() - _as_datetime(reference).date()).days
    return max(0, diff + 1)


def days_elapsed(start: DateLike, reference: DateLike) -> int:
    """Days since `start`, counting the start day itself. Minimum 1."""
    diff = (_as_datetime(reference).date() - _as_datetime(start).date()).days
    return max(1, diff + 1)


def is_date_in_period(value: DateLike, start: DateLike, end: DateLike) -> bool:
    """Inclusive on both ends."""
    return _as_datetime(start) <= _as_datetime(value) <= _as_datetime(end)
