"""Time utilities (UTC storage, Sunday–Saturday weeks)."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

import pytz


def now_utc_naive() -> datetime:
    """
    Current time in UTC, returned as naive datetime for DB storage.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_aware(dt: datetime) -> datetime:
    """Interpret naive DB timestamps as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_today(tz_name: str, now: Optional[datetime] = None) -> date:
    """Calendar date in the configured business timezone."""
    now = to_utc_aware(now) if now is not None else datetime.now(timezone.utc)
    return now.astimezone(pytz.timezone(tz_name)).date()


def week_start(day: date) -> date:
    """Sunday on or before ``day``."""
    days_since_sunday = (day.weekday() + 1) % 7
    return day - timedelta(days=days_since_sunday)


def current_week_range(today: date) -> Tuple[date, date]:
    """Sunday of this week through ``today`` (inclusive)."""
    return week_start(today), today


def previous_week_range(today: date) -> Tuple[date, date]:
    """
    The last full Sunday–Saturday week strictly before the current week.
    """
    end = week_start(today) - timedelta(days=1)
    start = end - timedelta(days=6)
    return start, end


def month_start(day: date) -> date:
    return date(day.year, day.month, 1)


def next_month_start(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def month_bounds(day: date) -> Tuple[datetime, datetime]:
    """Naive UTC datetimes [first of month, first of next month) for timestamp columns."""
    start = month_start(day)
    end = next_month_start(day)
    return (
        datetime(start.year, start.month, start.day),
        datetime(end.year, end.month, end.day),
    )
