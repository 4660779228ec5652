"""Daily, weekly and cooperative missions evaluated against the event log.

Each mission names a ``condition_key``; its progress is a count (or sum)
over the events inside the mission's window:

* daily: local midnight up to now
* weekly and cooperative: local Monday 00:00:00 to Sunday 23:59:59

Cooperative missions count everyone's events; claims are always per user.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.db.models import EventLog, MissionDefinition, User
from manabi.errors import ConfigurationError, GameError, NotFoundError
from manabi.gamification.event_log import (
    EventKind,
    MissionClaimPayload,
    append_event,
    event_amount,
    fetch_events,
    gacha_play_count,
)
from manabi.gamification.game_config import load_game_config
from manabi.gamification.locks import user_lock
from manabi.gamification.windows import day_window, in_window, school_timezone, week_window
from manabi.gamification.xp_service import credit_experience

logger = logging.getLogger(__name__)

RECORD_PREFIX = "record:"

ProgressFn = Callable[[Sequence[EventLog]], int]


def _count(kind: EventKind) -> ProgressFn:
    return lambda events: sum(1 for e in events if e.kind == kind.value)


PROGRESS_HANDLERS: dict[str, ProgressFn] = {
    "login": _count(EventKind.LOGIN_BONUS),
    "exp_total": lambda events: sum(event_amount(e) for e in events if e.kind == EventKind.EXP_GAIN.value),
    "exp_count": _count(EventKind.EXP_GAIN),
    "gacha": lambda events: gacha_play_count(list(events)),
    "typing": _count(EventKind.TYPING_COMPLETE),
    "arithmetic": _count(EventKind.ARITHMETIC_COMPLETE),
    "level_up": _count(EventKind.LEVEL_UP),
    "item_exchange": _count(EventKind.ITEM_EXCHANGE),
    "avatar_save": _count(EventKind.AVATAR_SAVE),
    "profile_save": _count(EventKind.PROFILE_SAVE),
    "badge": _count(EventKind.BADGE_AWARD),
}


def compute_progress(condition_key: str, events: Sequence[EventLog]) -> int:
    """Raw progress for a condition over already-windowed events. Unknown keys score 0."""
    key = condition_key.strip()
    if key.startswith(RECORD_PREFIX):
        source = key[len(RECORD_PREFIX):]
        return sum(
            1
            for e in events
            if e.kind == EventKind.EXP_GAIN.value and (e.payload or {}).get("source") == source
        )
    handler = PROGRESS_HANDLERS.get(key)
    if handler is None:
        logger.warning("Unknown mission condition key: %s", key)
        return 0
    return handler(events)


def is_active(definition: MissionDefinition) -> bool:
    return bool(definition.enabled) and bool((definition.condition_key or "").strip())


async def load_missions(db: AsyncSession) -> list[MissionDefinition]:
    result = await db.execute(select(MissionDefinition).order_by(MissionDefinition.sort_order, MissionDefinition.id))
    return [d for d in result.scalars() if is_active(d)]


async def check_missions(
    db: AsyncSession,
    user: User,
    definitions: Sequence[MissionDefinition] | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """Mission states for ``user``, in definition order."""
    now = now or datetime.now(timezone.utc)
    if definitions is None:
        definitions = await load_missions(db)
    definitions = [d for d in definitions if is_active(d)]
    if not definitions:
        return []

    tz = school_timezone()
    windows = {
        "daily": day_window(now, tz),
        "weekly": week_window(now, tz),
        "cooperative": week_window(now, tz),
    }
    week_start = windows["weekly"][0]

    own_events = await fetch_events(db, user_id=user.id, since=week_start)
    everyone: list[EventLog] | None = None
    if any(d.cadence == "cooperative" for d in definitions):
        everyone = await fetch_events(db, since=week_start)

    states = []
    for definition in definitions:
        window = windows.get(definition.cadence)
        if window is None:
            logger.warning("Mission %s has unknown cadence %s", definition.id, definition.cadence)
            continue

        source = everyone if definition.cadence == "cooperative" and everyone is not None else own_events
        in_range = [e for e in source if in_window(e.created_at, window)]
        target = definition.target
        raw = compute_progress(definition.condition_key, in_range)

        claimed = any(
            e.kind == EventKind.MISSION_CLAIM.value
            and (e.payload or {}).get("mission_id") == definition.id
            and in_window(e.created_at, window)
            for e in own_events
        )
        states.append({
            "id": definition.id,
            "title": definition.title,
            "cadence": definition.cadence,
            "progress": min(raw, target),
            "target": target,
            "is_complete": raw >= target,
            "is_claimed": claimed,
            "reward_type": definition.reward_type,
            "reward_amount": definition.reward_amount,
        })
    return states


async def claim_mission_reward(
    db: AsyncSession,
    user: User,
    mission_id: str,
    now: datetime | None = None,
) -> dict:
    """Claim a completed mission once per window.

    Raises NotFoundError for unknown or disabled missions and GameError when
    the mission is already claimed or not complete.
    """
    now = now or datetime.now(timezone.utc)
    mission_id = (mission_id or "").strip()
    definition = await db.get(MissionDefinition, mission_id) if mission_id else None
    if definition is None or not is_active(definition):
        raise NotFoundError("Mission not found")

    async with user_lock(user.id):
        await db.refresh(user)
        states = await check_missions(db, user, [definition], now)
        if not states:
            raise NotFoundError("Mission not found")
        state = states[0]
        if state["is_claimed"]:
            raise GameError("Mission reward already claimed")
        if not state["is_complete"]:
            raise GameError("Mission is not complete yet")

        amount = max(0, definition.reward_amount)
        level_up = None
        if definition.reward_type == "exp":
            config = await load_game_config(db)
            level_up = credit_experience(db, user, amount, config, now)
        elif definition.reward_type == "points":
            user.exchange_points += amount
        else:
            msg = f"Mission {definition.id} has unknown reward type '{definition.reward_type}'"
            raise ConfigurationError(msg)

        append_event(
            db,
            user.id,
            EventKind.MISSION_CLAIM,
            MissionClaimPayload(mission_id=definition.id, reward_type=definition.reward_type, amount=amount),
            now,
        )
        await db.commit()

    logger.info("User %s claimed mission %s (+%d %s)", user.id, definition.id, amount, definition.reward_type)
    return {
        "mission_id": definition.id,
        "reward_type": definition.reward_type,
        "amount": amount,
        "level_up": level_up,
        "spendable_exp": user.spendable_exp,
        "cumulative_exp": user.cumulative_exp,
        "exchange_points": user.exchange_points,
    }
