"""Login streaks derived from login-bonus events."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from manabi.gamification.event_log import EventKind, fetch_events
from manabi.gamification.windows import local_date, school_timezone


def compute_login_streak(login_dates: Iterable[date], today: date) -> int:
    """Count consecutive login days ending today.

    When there is no login today yet, the streak ending yesterday still
    counts, so a student does not see it drop to 0 before logging in.
    """
    days = set(login_dates)
    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


async def get_login_streak(db: AsyncSession, user_id: int, now: datetime | None = None) -> int:
    """Current login streak for a user in school-local days."""
    now = now or datetime.now(timezone.utc)
    tz = school_timezone()
    events = await fetch_events(db, user_id=user_id, kinds=[EventKind.LOGIN_BONUS])
    return compute_login_streak((local_date(e.created_at, tz) for e in events), local_date(now, tz))
