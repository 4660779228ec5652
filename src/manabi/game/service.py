"""Student-facing game data, profile and avatar operations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.config import get_settings
from manabi.db.models import Announcement, AvatarComposition, BadgeDefinition, Item, User
from manabi.errors import GameError
from manabi.gacha.service import load_catalog, owned_item_ids
from manabi.gamification.badge_service import badge_to_dict, check_and_award_badges
from manabi.gamification.event_log import (
    AvatarSavePayload,
    EventKind,
    ProfileSavePayload,
    append_event,
    recent_activity,
)
from manabi.gamification.game_config import GameConfig, load_game_config
from manabi.gamification.level import calculate_level
from manabi.gamification.locks import user_lock
from manabi.gamification.missions import check_missions
from manabi.gamification.seed import AVATAR_SLOTS
from manabi.gamification.windows import as_utc
from manabi.gamification.xp_service import apply_login_bonus

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("nickname", "favorite_subject", "goal", "comment")


def profile_to_dict(user: User, config: GameConfig) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "nickname": user.nickname,
        "role": user.role,
        "favorite_subject": user.favorite_subject,
        "goal": user.goal,
        "comment": user.comment,
        "cumulative_exp": user.cumulative_exp,
        "spendable_exp": user.spendable_exp,
        "exchange_points": user.exchange_points,
        "level": calculate_level(user.cumulative_exp, config),
    }


def announcement_to_dict(a: Announcement) -> dict:
    return {
        "id": a.id,
        "title": a.title,
        "body": a.body,
        "created_at": as_utc(a.created_at).isoformat(),
    }


async def get_announcements(db: AsyncSession, limit: int = 10) -> list[dict]:
    result = await db.execute(select(Announcement).order_by(Announcement.id.desc()).limit(limit))
    return [announcement_to_dict(a) for a in result.scalars()]


async def get_rankings(db: AsyncSession, config: GameConfig, limit: int) -> list[dict]:
    """Students ordered by cumulative experience."""
    result = await db.execute(
        select(User)
        .where(User.role == "student")
        .order_by(User.cumulative_exp.desc(), User.id)
        .limit(limit)
    )
    return [
        {
            "rank": i,
            "user_id": u.id,
            "nickname": u.nickname,
            "cumulative_exp": u.cumulative_exp,
            "level": calculate_level(u.cumulative_exp, config)["level"],
        }
        for i, u in enumerate(result.scalars(), start=1)
    ]


async def get_avatar_slots(db: AsyncSession, user_id: int) -> dict[str, str]:
    avatar = await db.get(AvatarComposition, user_id)
    return dict(avatar.slots or {}) if avatar else {}


async def get_game_data(db: AsyncSession, user: User, now: datetime | None = None) -> dict:
    """Everything the student screen needs, after granting the login bonus and due badges."""
    now = now or datetime.now(timezone.utc)
    settings = get_settings()

    async with user_lock(user.id):
        await db.refresh(user)
        config = await load_game_config(db)
        login_bonus = apply_login_bonus(db, user, config, now)
        await db.commit()

    badge_state = await check_and_award_badges(db, user, now)
    earned_ids = {b["id"] for b in badge_state["earned"]}
    badges = await db.execute(select(BadgeDefinition).order_by(BadgeDefinition.sort_order, BadgeDefinition.id))

    catalog = await load_catalog(db)
    owned = await owned_item_ids(db, user.id)

    return {
        "profile": profile_to_dict(user, config),
        "inventory": [item.as_dict() for item in catalog if item.id in owned],
        "avatar": await get_avatar_slots(db, user.id),
        "catalog": [item.as_dict() for item in catalog],
        "missions": await check_missions(db, user, now=now),
        "badges": [badge_to_dict(b, b.id in earned_ids) for b in badges.scalars()],
        "rankings": await get_rankings(db, config, settings.ranking_size),
        "activity": await recent_activity(db, settings.activity_feed_size),
        "announcements": await get_announcements(db),
        "login_bonus": login_bonus,
        "new_badges": badge_state["newly_awarded"],
    }


async def save_profile(
    db: AsyncSession,
    user: User,
    values: dict[str, str | None],
    now: datetime | None = None,
) -> dict:
    """Update the given profile fields. ``None`` means leave unchanged."""
    updates = {k: (v or "").strip() for k, v in values.items() if k in PROFILE_FIELDS and v is not None}
    if "nickname" in updates and not updates["nickname"]:
        raise GameError("Nickname cannot be empty")

    async with user_lock(user.id):
        await db.refresh(user)
        changed = [k for k, v in updates.items() if getattr(user, k) != v]
        for key in changed:
            setattr(user, key, updates[key])
        if changed:
            append_event(db, user.id, EventKind.PROFILE_SAVE, ProfileSavePayload(fields=changed), now)
        await db.commit()

    config = await load_game_config(db)
    return {"profile": profile_to_dict(user, config), "changed": changed}


async def save_avatar(
    db: AsyncSession,
    user: User,
    slots: dict[str, str | None],
    now: datetime | None = None,
) -> dict:
    """Equip items per slot. An empty value unequips the slot.

    Raises GameError for unknown slots, unowned items or items of another category.
    """
    now = now or datetime.now(timezone.utc)
    unknown = [s for s in slots if s not in AVATAR_SLOTS]
    if unknown:
        raise GameError(f"Unknown avatar slot: {', '.join(sorted(unknown))}")

    async with user_lock(user.id):
        owned = await owned_item_ids(db, user.id)
        avatar = await db.get(AvatarComposition, user.id)
        composition = dict(avatar.slots or {}) if avatar else {}

        for slot, item_id in slots.items():
            item_id = (item_id or "").strip()
            if not item_id:
                composition.pop(slot, None)
                continue
            if item_id not in owned:
                raise GameError("You do not own this item")
            item = await db.get(Item, item_id)
            if item is None or item.category != slot:
                raise GameError(f"This item cannot be worn as {slot}")
            composition[slot] = item_id

        if avatar is None:
            avatar = AvatarComposition(user_id=user.id, slots=composition, updated_at=now)
            db.add(avatar)
        else:
            avatar.slots = composition
            avatar.updated_at = now
        append_event(db, user.id, EventKind.AVATAR_SAVE, AvatarSavePayload(slots=composition), now)
        await db.commit()

    logger.info("User %s saved avatar %s", user.id, composition)
    return {"avatar": composition}

