"""
Billing period keys.

Monthly spend is keyed by billing period. Users without a billing-cycle
anchor use the calendar month (``YYYY-MM``); anchored users use the start
date of their current cycle (``YYYY-MM-DD``).
"""

import calendar
from datetime import date, datetime
from typing import Optional


def day_key(now: datetime) -> str:
    """Calendar-day key (``YYYY-MM-DD``) for daily aggregates."""
    return now.date().isoformat()


def calendar_month_key(now: datetime) -> str:
    return f"{now.year:04d}-{now.month:02d}"


def _clamped(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def current_cycle_start(now: datetime, cycle_anchor: date) -> date:
    """Start date of the billing cycle containing ``now``.

    A cycle anchored on the 31st starts on the last day of shorter months.
    """
    start = _clamped(now.year, now.month, cycle_anchor.day)
    if now.date() < start:
        year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
        start = _clamped(year, month, cycle_anchor.day)
    return start


def billing_period_key(now: datetime, cycle_anchor: Optional[date] = None) -> str:
    """Key for the monthly ledger entry covering ``now``.

    Args:
        now: Current wall-clock time
        cycle_anchor: Date the user's billing cycle started, if any

    Returns:
        ``YYYY-MM`` without an anchor, otherwise the cycle start ``YYYY-MM-DD``
    """
    if cycle_anchor is None:
        return calendar_month_key(now)
    return current_cycle_start(now, cycle_anchor).isoformat()
