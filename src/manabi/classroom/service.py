"""Teacher console: class overview, grants, announcements and settings."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.config import get_settings
from manabi.db.models import Announcement, User
from manabi.errors import ConfigurationError, GameError, NotFoundError
from manabi.gacha.service import load_catalog, owned_item_ids
from manabi.game.service import announcement_to_dict, get_announcements, get_avatar_slots, profile_to_dict
from manabi.gamification.badge_service import get_earned_badge_ids
from manabi.gamification.event_log import (
    EventKind,
    PointGrantPayload,
    append_event,
    recent_activity,
)
from manabi.gamification.game_config import load_game_config, save_game_settings
from manabi.gamification.level import calculate_level
from manabi.gamification.locks import user_lock
from manabi.gamification.missions import check_missions
from manabi.gamification.streak_service import get_login_streak
from manabi.gamification.xp_service import credit_experience

logger = logging.getLogger(__name__)

GRANT_KINDS = ("exp", "points")


async def get_teacher_data(db: AsyncSession) -> dict:
    """Students with levels and balances, plus announcements, settings and activity."""
    config = await load_game_config(db)
    result = await db.execute(select(User).where(User.role == "student").order_by(User.id))
    students = []
    for u in result.scalars():
        level = calculate_level(u.cumulative_exp, config)
        students.append({
            "id": u.id,
            "email": u.email,
            "nickname": u.nickname,
            "level": level["level"],
            "progress_percent": level["progress_percent"],
            "cumulative_exp": u.cumulative_exp,
            "spendable_exp": u.spendable_exp,
            "exchange_points": u.exchange_points,
            "last_login_date": u.last_login_date.isoformat() if u.last_login_date else None,
        })

    return {
        "students": students,
        "announcements": await get_announcements(db, limit=50),
        "settings": dict(config),
        "activity": await recent_activity(db, get_settings().activity_feed_size),
    }


async def get_student_details(db: AsyncSession, user_id: int) -> dict:
    student = await db.get(User, user_id)
    if student is None:
        raise NotFoundError("Student not found")

    config = await load_game_config(db)
    owned = await owned_item_ids(db, student.id)
    catalog = await load_catalog(db)
    return {
        "profile": profile_to_dict(student, config),
        "inventory": [item.as_dict() for item in catalog if item.id in owned],
        "avatar": await get_avatar_slots(db, student.id),
        "badges": sorted(await get_earned_badge_ids(db, student.id)),
        "missions": await check_missions(db, student),
        "login_streak": await get_login_streak(db, student.id),
        "activity": await recent_activity(db, 50, user_id=student.id),
    }


async def grant_points(
    db: AsyncSession,
    teacher: User,
    user_ids: list[int],
    kind: str,
    amount: int,
    reason: str = "",
    now: datetime | None = None,
) -> dict:
    """Credit EXP or exchange points to each listed student.

    Each student is granted in its own transaction. Unknown ids and failed
    writes are reported in ``errors``; the rest are credited.
    """
    if kind not in GRANT_KINDS:
        raise GameError("Grant kind must be 'exp' or 'points'")
    if amount <= 0:
        raise GameError("Amount must be positive")

    now = now or datetime.now(timezone.utc)
    config = await load_game_config(db)
    teacher_id = teacher.id
    granted: list[int] = []
    errors: list[dict] = []

    for user_id in dict.fromkeys(user_ids):
        student = await db.get(User, user_id)
        if student is None:
            errors.append({"user_id": user_id, "message": "User not found"})
            continue

        try:
            async with user_lock(user_id):
                await db.refresh(student)
                if kind == "exp":
                    credit_experience(db, student, amount, config, now)
                else:
                    student.exchange_points += amount
                append_event(
                    db,
                    user_id,
                    EventKind.POINT_GRANT,
                    PointGrantPayload(kind=kind, amount=amount, reason=reason.strip(), granted_by=teacher_id),
                    now,
                )
                await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Grant to user %s failed", user_id)
            errors.append({"user_id": user_id, "message": "Grant failed"})
            continue
        granted.append(user_id)

    logger.info("Teacher %s granted %d %s to %s", teacher_id, amount, kind, granted)
    return {"granted": granted, "errors": errors}


async def post_announcement(db: AsyncSession, teacher: User, title: str, body: str) -> dict:
    title = title.strip()
    if not title:
        raise GameError("Title cannot be empty")
    announcement = Announcement(
        title=title,
        body=body.strip(),
        author_id=teacher.id,
        created_at=datetime.now(timezone.utc),
    )
    db.add(announcement)
    await db.commit()
    return announcement_to_dict(announcement)


async def delete_announcement(db: AsyncSession, announcement_id: int) -> None:
    announcement = await db.get(Announcement, announcement_id)
    if announcement is None:
        raise NotFoundError("Announcement not found")
    await db.delete(announcement)
    await db.commit()


async def update_config_settings(db: AsyncSession, values: dict[str, object]) -> dict[str, str]:
    """Save settings; unknown keys or non-numeric values reject the whole update."""
    if not values:
        raise GameError("No settings given")
    try:
        saved = await save_game_settings(db, values)
    except ConfigurationError as e:
        await db.rollback()
        raise GameError(e.message) from e
    await db.commit()
    logger.info("Game settings updated: %s", saved)
    return saved
