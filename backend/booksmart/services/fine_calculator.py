"""Overdue fine computation."""
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

DateLike = Union[date, datetime]

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def calendar_day(value: DateLike) -> date:
    """Reduce a date or datetime to its UTC calendar date.

    Naive datetimes are taken to already be in UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def days_overdue(due_date: DateLike, reference_date: DateLike) -> int:
    """Whole calendar days between the due date and the reference date, never negative."""
    delta = (calendar_day(reference_date) - calendar_day(due_date)).days
    return max(0, delta)


def compute(
    due_date: DateLike,
    reference_date: DateLike,
    daily_rate: Union[Decimal, str, int],
) -> Decimal:
    """Fine owed for a loan due on ``due_date`` as of ``reference_date``.

    Returns ``daysLate * daily_rate`` rounded to cents, or ``0.00`` when the
    reference date is on or before the due date.
    """
    days = days_overdue(due_date, reference_date)
    if days == 0:
        return ZERO
    rate = Decimal(str(daily_rate))
    return (rate * days).quantize(CENT, rounding=ROUND_HALF_UP)
