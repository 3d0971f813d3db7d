"""
Calendar and money arithmetic for billing.

Everything here is a pure function of its arguments so it can be evaluated
outside any lock and shared by the preview and apply paths of a plan change.

Billing periods are calendar months in UTC: ``[first instant of the month,
first instant of the next month)``.
"""

from __future__ import annotations

from datetime import UTC
from datetime import datetime
from datetime import timedelta
from decimal import ROUND_HALF_UP
from decimal import Decimal

from fieldops.billing.constants import TWO_PLACES

DECEMBER = 12
ONE_MICROSECOND = timedelta(microseconds=1)


def as_utc(value: datetime) -> datetime:
    """Normalize an instant to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def month_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """
    Return the calendar-month ``[start, end)`` containing ``moment``.

    Usage:
        start, end = month_bounds(datetime(2024, 3, 16, tzinfo=UTC))
        # start == 2024-03-01T00:00Z, end == 2024-04-01T00:00Z
    """
    moment = as_utc(moment)
    start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == DECEMBER:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def in_month_of(candidate: datetime | None, moment: datetime) -> bool:
    """True if ``candidate`` falls inside the calendar month containing ``moment``."""
    if candidate is None:
        return False
    start, end = month_bounds(moment)
    candidate = as_utc(candidate)
    return start <= candidate < end


def round2(value: Decimal) -> Decimal:
    """Round to currency minor units, half away from zero."""
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_money(value) -> Decimal:
    """Coerce ints, strings and Decimals to a 2-place Decimal amount."""
    return round2(Decimal(str(value)))


def remaining_fraction(
    period_start: datetime,
    period_end: datetime,
    now: datetime,
) -> Decimal:
    """
    Fraction of ``[period_start, period_end)`` that is still ahead of ``now``.

    Computed on integer microseconds so the result is exact for Decimal
    arithmetic, then clamped to ``[0, 1]``.
    """
    period_start = as_utc(period_start)
    period_end = as_utc(period_end)
    now = as_utc(now)

    total = (period_end - period_start) // ONE_MICROSECOND
    if total <= 0:
        return Decimal(0)
    remaining = (period_end - now) // ONE_MICROSECOND
    if remaining <= 0:
        return Decimal(0)
    if remaining >= total:
        return Decimal(1)
    return Decimal(remaining) / Decimal(total)
