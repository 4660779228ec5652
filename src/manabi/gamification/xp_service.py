"""Experience crediting, level-up detection and the daily login bonus."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.config import get_settings
from manabi.db.models import User
from manabi.gamification.event_log import (
    EventKind,
    LevelUpPayload,
    LoginBonusPayload,
    append_event,
)
from manabi.gamification.game_config import GameConfig
from manabi.gamification.level import calculate_level
from manabi.gamification.windows import local_date, school_timezone

logger = logging.getLogger(__name__)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def get_or_create_user(db: AsyncSession, email: str, nickname: str = "") -> User:
    """Get the user for a verified email, creating it on first sight."""
    email = email.strip().lower()
    user = await get_user_by_email(db, email)
    if user is not None:
        return user

    teachers = {e.strip().lower() for e in get_settings().teacher_emails}
    user = User(
        email=email,
        nickname=nickname or email.split("@", 1)[0],
        role="teacher" if email in teachers else "student",
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.flush()
    logger.info("Created user %s (role=%s)", user.id, user.role)
    return user


def credit_experience(
    db: AsyncSession,
    user: User,
    amount: int,
    config: GameConfig,
    now: datetime | None = None,
) -> int | None:
    """Add ``amount`` to cumulative and spendable experience.

    Appends a ``level_up`` event when the level increases and returns the new
    level in that case, otherwise None. Nothing is flushed.
    """
    if amount <= 0:
        return None

    old_level = calculate_level(user.cumulative_exp, config)["level"]
    user.cumulative_exp += amount
    user.spendable_exp += amount
    new_level = calculate_level(user.cumulative_exp, config)["level"]

    if new_level > old_level:
        append_event(
            db,
            user.id,
            EventKind.LEVEL_UP,
            LevelUpPayload(level=new_level, previous_level=old_level),
            now,
        )
        logger.info("User %s leveled up %d -> %d", user.id, old_level, new_level)
        return new_level
    return None


async def add_experience(
    db: AsyncSession,
    user_id: int,
    amount: int,
    config: GameConfig,
    now: datetime | None = None,
) -> int | None:
    """Increment both balances of ``user_id`` in SQL.

    For callers that hold no fresh copy of the user row: debits committed by
    other sessions in the meantime are kept. Returns the new level on a
    level-up, otherwise None.
    """
    if amount <= 0:
        return None

    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            cumulative_exp=User.cumulative_exp + amount,
            spendable_exp=User.spendable_exp + amount,
        )
        .returning(User.cumulative_exp)
        .execution_options(synchronize_session=False)
    )
    total = result.scalar_one()
    # Bring an already loaded copy in step with the row
    await db.get(User, user_id, populate_existing=True)

    old_level = calculate_level(total - amount, config)["level"]
    new_level = calculate_level(total, config)["level"]
    if new_level > old_level:
        append_event(
            db,
            user_id,
            EventKind.LEVEL_UP,
            LevelUpPayload(level=new_level, previous_level=old_level),
            now,
        )
        logger.info("User %s leveled up %d -> %d", user_id, old_level, new_level)
        return new_level
    return None


def apply_login_bonus(
    db: AsyncSession,
    user: User,
    config: GameConfig,
    now: datetime | None = None,
) -> dict | None:
    """Grant the once-per-local-day login bonus. Returns a notice or None."""
    now = now or datetime.now(timezone.utc)
    today = local_date(now, school_timezone())
    if user.last_login_date == today:
        return None

    user.last_login_date = today
    amount = max(0, config.get_int("login_bonus_exp"))
    append_event(db, user.id, EventKind.LOGIN_BONUS, LoginBonusPayload(amount=amount), now)
    new_level = credit_experience(db, user, amount, config, now)

    return {
        "amount": amount,
        "date": today.isoformat(),
        "level_up": new_level,
    }
