"""Calendar math for rotating programs and order-lock windows.

All values are device-local: dates and naive datetimes straight from the local
clock, with weekdays numbered 0 (Sunday) through 6 (Saturday) and weeks starting
on Sunday.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from .models import CycleProgram

DAYS_PER_WEEK = 7


def local_weekday(day: date) -> int:
    """Return the weekday with Sunday as 0."""
    return day.isoweekday() % DAYS_PER_WEEK


def start_of_week(day: date) -> date:
    return day - timedelta(days=local_weekday(day))


def current_week(program: Optional[CycleProgram], today: date) -> Optional[int]:
    """Return the 1-based rotation week for ``today`` or ``None`` when rotation is inactive."""
    if program is None or not program.is_rotating or program.start_date is None:
        return None
    elapsed_days = max((today - program.start_date).days, 0)
    return (elapsed_days // DAYS_PER_WEEK) % program.length_weeks + 1


def day_lock_expiry(now: datetime) -> datetime:
    """End of the current local day, expressed as the next midnight."""
    return datetime.combine(now.date() + timedelta(days=1), time.min)


def week_lock_expiry(now: datetime, weekdays: Iterable[int]) -> datetime:
    """Start of the week that follows the last upcoming occurrence of ``weekdays``.

    Each chosen weekday is projected to its next occurrence on or after today, so
    a weekday already past this week is locked next week instead of dropped.
    """
    chosen = set(weekdays)
    if not chosen:
        raise ValueError("A week lock needs at least one weekday.")
    today = now.date()
    today_weekday = local_weekday(today)
    latest = today + timedelta(days=max((day - today_weekday) % DAYS_PER_WEEK for day in chosen))
    return datetime.combine(start_of_week(latest) + timedelta(days=DAYS_PER_WEEK), time.min)


__all__ = [
    "DAYS_PER_WEEK",
    "current_week",
    "day_lock_expiry",
    "local_weekday",
    "start_of_week",
    "week_lock_expiry",
]
