"""Day and week boundaries in the school's local timezone.

Mission windows and login streaks are evaluated on local calendar days.
Stored timestamps are UTC; SQLite hands them back naive, so every comparison
goes through ``as_utc``.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from manabi.config import get_settings


@lru_cache
def resolve_timezone(name: str) -> tzinfo:
    """Map a timezone name to a tzinfo. ``UTC`` needs no tz database."""
    if name.upper() in {"UTC", "Z", "ETC/UTC"}:
        return timezone.utc
    return ZoneInfo(name)


def school_timezone() -> tzinfo:
    """The configured school-local timezone."""
    return resolve_timezone(get_settings().timezone)


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_date(dt: datetime, tz: tzinfo) -> date:
    """Calendar date of ``dt`` in ``tz``."""
    return as_utc(dt).astimezone(tz).date()


def get_monday(d: date) -> date:
    """Monday of the week containing ``d``."""
    return d - timedelta(days=d.weekday())


def day_window(now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """(local midnight today, now) in UTC."""
    today = local_date(now, tz)
    start = datetime.combine(today, time.min, tzinfo=tz)
    return as_utc(start), as_utc(now)


def week_window(now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """(Monday 00:00:00, Sunday 23:59:59) local of the week containing ``now``, in UTC."""
    monday = get_monday(local_date(now, tz))
    sunday = monday + timedelta(days=6)
    start = datetime.combine(monday, time.min, tzinfo=tz)
    end = datetime.combine(sunday, time(23, 59, 59), tzinfo=tz)
    return as_utc(start), as_utc(end)


def in_window(dt: datetime, window: tuple[datetime, datetime]) -> bool:
    start, end = window
    return start <= as_utc(dt) <= end
