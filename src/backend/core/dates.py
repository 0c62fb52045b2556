"""
Calendar arithmetic shared by accrual and the ledger.

All datetimes are timezone-aware UTC. Periods are calendar months, treated
as half-open intervals ``[month_start, next_month_start)``.
"""

import calendar
import math
from datetime import datetime, timedelta, timezone
from typing import Iterable

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def month_start(value: datetime) -> datetime:
    value = ensure_utc(value)
    return datetime(value.year, value.month, 1, tzinfo=timezone.utc)


def next_month_start(value: datetime) -> datetime:
    start = month_start(value)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def prev_month_start(value: datetime) -> datetime:
    return month_start(month_start(value) - DAY)


def date_start(value: datetime) -> datetime:
    value = ensure_utc(value)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def days_in_month(value: datetime) -> int:
    value = ensure_utc(value)
    return calendar.monthrange(value.year, value.month)[1]


def hours_in_month(value: datetime) -> int:
    return 24 * days_in_month(value)


def period_key(value: datetime) -> str:
    """Identifier of the calendar month containing ``value`` (e.g. ``2024-03``)."""
    value = ensure_utc(value)
    return f"{value.year:04d}-{value.month:02d}"


def whole_hours_between(start: datetime, end: datetime) -> int:
    return max(0, math.floor((end - start) / HOUR))


def month_fraction(start: datetime, end: datetime) -> float:
    """
    Fraction of a month covered by ``[start, end)``.

    The interval is split at month boundaries and every slice is prorated by
    the length of its own month, so an interval spanning February and March
    is not measured against a single month length.
    """
    total = 0.0
    cursor = ensure_utc(start)
    end = ensure_utc(end)
    while cursor < end:
        boundary = min(next_month_start(cursor), end)
        total += ((boundary - cursor) / HOUR) / hours_in_month(cursor)
        cursor = boundary
    return total


def _break_day_span(
    start: datetime, end: datetime, first_of_month: datetime, first_of_next: datetime
) -> tuple[int, int] | None:
    """Day indices ``[lo, hi)`` of the month touched by a break, or None."""
    start = max(ensure_utc(start), first_of_month)
    end = min(ensure_utc(end), first_of_next)
    if start >= end:
        return None
    lo = start.day - 1
    # A break marks every day whose same-time-of-day instant falls before its end
    count = math.ceil((end - start) / DAY)
    hi = min(lo + count, days_in_month(first_of_month))
    return lo, hi


def inactive_days(
    breaks: Iterable[tuple[datetime, datetime]], reference: datetime
) -> int:
    """Number of distinct days in ``reference``'s month covered by ``breaks``."""
    first_of_month = month_start(reference)
    first_of_next = next_month_start(reference)

    spans = sorted(
        span
        for span in (
            _break_day_span(start, end, first_of_month, first_of_next) for start, end in breaks
        )
        if span is not None
    )

    covered = 0
    current_lo, current_hi = None, None
    for lo, hi in spans:
        if current_hi is None or lo > current_hi:
            if current_hi is not None:
                covered += current_hi - current_lo
            current_lo, current_hi = lo, hi
        else:
            current_hi = max(current_hi, hi)
    if current_hi is not None:
        covered += current_hi - current_lo
    return covered


def active_fraction(
    breaks: Iterable[tuple[datetime, datetime]],
    reference: datetime,
    active_at: datetime | None = None,
) -> float:
    """
    Share of ``reference``'s month a participant was active.

    A participant activated after the month started has an implicit break
    from the first of the month to the start of their activation day.
    """
    first_of_month = month_start(reference)
    breaks = list(breaks)
    if active_at is not None and first_of_month < ensure_utc(active_at):
        breaks.append((first_of_month, date_start(active_at)))

    total_days = days_in_month(reference)
    return (total_days - inactive_days(breaks, reference)) / total_days
