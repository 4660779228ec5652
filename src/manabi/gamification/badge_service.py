"""Badge evaluation and awarding.

A badge definition names a ``condition_key`` and a ``threshold``; the metric
registered for the key is computed for the user and the badge is awarded
when the metric reaches the threshold. Awards are permanent and happen at
most once per (user, badge).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.db.models import (
    AvatarComposition,
    BadgeDefinition,
    EarnedBadge,
    EventLog,
    InventoryEntry,
    User,
)
from manabi.gamification.event_log import (
    BadgeAwardPayload,
    EventKind,
    append_event,
    fetch_events,
    gacha_play_count,
)
from manabi.gamification.game_config import load_game_config
from manabi.gamification.ingestion import SOURCE_TYPE_MAP
from manabi.gamification.level import calculate_level
from manabi.gamification.locks import user_lock
from manabi.gamification.streak_service import get_login_streak

logger = logging.getLogger(__name__)

MetricFn = Callable[[AsyncSession, User, dict[str, Any], datetime], Awaitable[float]]


def _record_column(params: dict[str, Any]):
    source = SOURCE_TYPE_MAP.get(str(params.get("source", "")))
    if source is None:
        return None, None
    field = params.get("field")
    column = getattr(source.model, field, None) if field else None
    return source.model, column


async def _metric_level(db: AsyncSession, user: User, params: dict[str, Any], now: datetime) -> float:
    config = await load_game_config(db)
    return calculate_level(user.cumulative_exp, config)["level"]


async def _metric_record_max(db: AsyncSession, user: User, params: dict[str, Any], now: datetime) -> float:
    model, column = _record_column(params)
    if model is None or column is None:
        return 0
    result = await db.execute(select(func.max(column)).where(model.email == user.email))
    return float(result.scalar() or 0)


async def _metric_record_count(db: AsyncSession, user: User, params: dict[str, Any], now: datetime) -> float:
    model, column = _record_column(params)
    if model is None:
        return 0
    query = select(func.count()).select_from(model).where(model.email == user.email)
    if column is not None and params.get("min") is not None:
        query = query.where(column >= params["min"])
    result = await db.execute(query)
    return float(result.scalar() or 0)


async def _metric_log_count(db: AsyncSession, user: User, params: dict[str, Any], now: datetime) -> float:
    try:
        kind = EventKind(str(params.get("kind", "")))
    except ValueError:
        return 0
    events = await fetch_events(db, user_id=user.id, kinds=[kind])
    source = params.get("source")
    if source:
        events = [e for e in events if (e.payload or {}).get("source") == source]
    return float(len(events))


async def _metric_login_streak(db: AsyncSession, user: User, params: dict[str, Any], now: datetime) -> float:
    return float(await get_login_streak(db, user.id, now))


async def _metric_profile_complete(db: AsyncSession, user: User, params: dict[str, Any], now: datetime) -> float:
    fields = (user.nickname, user.favorite_subject, user.goal, user.comment)
    return 1.0 if all((f or "").strip() for f in fields) else 0.0


async def _metric_avatar_slots(db: AsyncSession, user: User, params: dict[str, Any], now: datetime) -> float:
    avatar = await db.get(AvatarComposition, user.id)
    if avatar is None:
        return 0
    return float(sum(1 for v in (avatar.slots or {}).values() if v))


async def _metric_gacha_count(db: AsyncSession, user: User, params: dict[str, Any], now: datetime) -> float:
    events = await fetch_events(
        db,
        user_id=user.id,
        kinds=[EventKind.GACHA_PLAY, EventKind.GACHA_DUPLICATE, EventKind.GACHA_10],
    )
    return float(gacha_play_count(events))


async def _metric_inventory_size(db: AsyncSession, user: User, params: dict[str, Any], now: datetime) -> float:
    result = await db.execute(
        select(func.count()).select_from(InventoryEntry).where(InventoryEntry.user_id == user.id)
    )
    return float(result.scalar() or 0)


async def _metric_mission_claims(db: AsyncSession, user: User, params: dict[str, Any], now: datetime) -> float:
    result = await db.execute(
        select(func.count())
        .select_from(EventLog)
        .where(EventLog.user_id == user.id, EventLog.kind == EventKind.MISSION_CLAIM.value)
    )
    return float(result.scalar() or 0)


METRICS: dict[str, MetricFn] = {
    "level": _metric_level,
    "record_max": _metric_record_max,
    "record_count": _metric_record_count,
    "log_count": _metric_log_count,
    "login_streak": _metric_login_streak,
    "profile_complete": _metric_profile_complete,
    "avatar_slots": _metric_avatar_slots,
    "gacha_count": _metric_gacha_count,
    "inventory_size": _metric_inventory_size,
    "mission_claims": _metric_mission_claims,
}


def badge_to_dict(badge: BadgeDefinition, earned: bool = False) -> dict:
    return {
        "id": badge.id,
        "name": badge.name,
        "description": badge.description,
        "condition_key": badge.condition_key,
        "threshold": badge.threshold,
        "is_earned": earned,
    }


async def get_earned_badge_ids(db: AsyncSession, user_id: int) -> set[str]:
    result = await db.execute(select(EarnedBadge.badge_id).where(EarnedBadge.user_id == user_id))
    return set(result.scalars())


async def evaluate_badge(db: AsyncSession, user: User, badge: BadgeDefinition, now: datetime) -> float | None:
    """Metric value for ``badge``; None when its condition key is unknown."""
    metric = METRICS.get(badge.condition_key)
    if metric is None:
        logger.warning("Badge %s has unknown condition key %s", badge.id, badge.condition_key)
        return None
    return await metric(db, user, badge.condition_params or {}, now)


async def check_and_award_badges(
    db: AsyncSession,
    user: User,
    now: datetime | None = None,
) -> dict:
    """Award every badge whose condition is now met.

    Returns ``{"earned": [...], "newly_awarded": [...]}`` where ``earned`` is
    the full earned list (including the new ones).
    """
    now = now or datetime.now(timezone.utc)
    result = await db.execute(select(BadgeDefinition).order_by(BadgeDefinition.sort_order, BadgeDefinition.id))
    catalog = list(result.scalars())

    newly_awarded: list[dict] = []
    async with user_lock(user.id):
        earned_ids = await get_earned_badge_ids(db, user.id)
        for badge in catalog:
            if badge.id in earned_ids:
                continue
            value = await evaluate_badge(db, user, badge, now)
            if value is None or value < badge.threshold:
                continue

            db.add(EarnedBadge(user_id=user.id, badge_id=badge.id, earned_at=now))
            append_event(
                db,
                user.id,
                EventKind.BADGE_AWARD,
                BadgeAwardPayload(badge_id=badge.id, badge_name=badge.name),
                now,
            )
            earned_ids.add(badge.id)
            newly_awarded.append(badge_to_dict(badge, earned=True))
            logger.info("Awarded badge %s to user %s (metric=%s)", badge.id, user.id, value)

        if newly_awarded:
            try:
                await db.commit()
            except IntegrityError:
                # Another process awarded the same badge first
                await db.rollback()
                await db.refresh(user)
                logger.warning("Badge award conflict for user %s", user.id)
                newly_awarded = []
                earned_ids = await get_earned_badge_ids(db, user.id)

    return {
        "earned": [badge_to_dict(b, earned=True) for b in catalog if b.id in earned_ids],
        "newly_awarded": newly_awarded,
    }
