"""
Invoice Aging

Date arithmetic for the overdue reminder:

    days_overdue(due_date, now)   whole days between now and the due date
    last_month_end(today)         last day of the previous calendar month
    due_cutoff(due_range, today)  resolves a relative due-date range

The day count is unsigned: an invoice due in the future yields the same
count as one that is the same distance in the past.  Filtering out
not-yet-due invoices is the query's job.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta

_SECONDS_PER_DAY = 24 * 60 * 60

DUE_RANGE_LAST_MONTH = "last_month"
DUE_RANGE_TODAY = "today"


def days_overdue(due_date: date | datetime, now: date | datetime) -> int:
    """Return ``floor(abs(now - due_date))`` in days.

    A bare ``date`` is taken as midnight of that day, so with ``now`` at
    09:00 an invoice due 30 days ago is 30.375 days old and counts as 30.

    Examples:
        >>> days_overdue(date(2026, 9, 19), datetime(2026, 10, 19, 9, 0))
        30
        >>> days_overdue(date(2026, 10, 20), datetime(2026, 10, 19, 9, 0))
        0
    """
    due_dt = _as_datetime(due_date, now)
    now_dt = _as_datetime(now, now)
    elapsed = (now_dt - due_dt).total_seconds() / _SECONDS_PER_DAY
    return math.floor(abs(elapsed))


def last_month_end(today: date | datetime) -> date:
    """Last calendar day of the month before ``today``.

    Examples:
        >>> last_month_end(date(2026, 10, 19))
        datetime.date(2026, 9, 30)
        >>> last_month_end(date(2026, 3, 1))
        datetime.date(2026, 2, 28)
    """
    if isinstance(today, datetime):
        today = today.date()
    return today.replace(day=1) - timedelta(days=1)


def due_cutoff(due_range: str, today: date | datetime) -> date:
    """Resolve a relative due-date range to an inclusive cutoff date."""
    key = (due_range or "").strip().lower()
    if key == DUE_RANGE_LAST_MONTH:
        return last_month_end(today)
    if key == DUE_RANGE_TODAY:
        return today.date() if isinstance(today, datetime) else today
    raise ValueError(f"Unknown due date range: {due_range!r}")


def _as_datetime(value: date | datetime, reference: date | datetime) -> datetime:
    """Promote a date to midnight, matching the timezone of ``reference``."""
    if isinstance(value, datetime):
        return value
    tzinfo = reference.tzinfo if isinstance(reference, datetime) else None
    return datetime.combine(value, time.min, tzinfo=tzinfo)
