"""Append-only event log with a typed payload per action kind.

Engines read the structured payload fields (amount, source, mission_id, ...)
directly. ``render_message`` turns an entry into display text for activity
feeds and is never parsed back.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.db.models import EventLog
from manabi.gamification.windows import as_utc


class EventKind(str, Enum):
    LOGIN_BONUS = "login_bonus"
    EXP_GAIN = "exp_gain"
    LEVEL_UP = "level_up"
    ITEM_EXCHANGE = "item_exchange"
    GACHA_PLAY = "gacha_play"
    GACHA_DUPLICATE = "gacha_duplicate"
    GACHA_10 = "gacha_10"
    MISSION_CLAIM = "mission_claim"
    BADGE_AWARD = "badge_award"
    AVATAR_SAVE = "avatar_save"
    PROFILE_SAVE = "profile_save"
    POINT_GRANT = "point_grant"
    # Internal completion markers, only counted by missions
    TYPING_COMPLETE = "typing_complete"
    ARITHMETIC_COMPLETE = "arithmetic_complete"


INTERNAL_KINDS = frozenset({EventKind.TYPING_COMPLETE, EventKind.ARITHMETIC_COMPLETE})


# --- Payloads ---


class LoginBonusPayload(BaseModel):
    amount: int


class ExpGainPayload(BaseModel):
    amount: int
    source: str
    record_id: int | None = None


class LevelUpPayload(BaseModel):
    level: int
    previous_level: int


class ItemExchangePayload(BaseModel):
    item_id: str
    item_name: str
    cost: int


class GachaPayload(BaseModel):
    item_id: str
    item_name: str
    rarity: str
    cost: int
    points: int = 0


class Gacha10Payload(BaseModel):
    item_ids: list[str]
    new_item_ids: list[str]
    cost: int
    points: int


class MissionClaimPayload(BaseModel):
    mission_id: str
    reward_type: str
    amount: int


class BadgeAwardPayload(BaseModel):
    badge_id: str
    badge_name: str


class AvatarSavePayload(BaseModel):
    slots: dict[str, str]


class ProfileSavePayload(BaseModel):
    fields: list[str]


class PointGrantPayload(BaseModel):
    kind: str
    amount: int
    reason: str = ""
    granted_by: int | None = None


class CompletionPayload(BaseModel):
    source: str
    record_id: int | None = None


PAYLOAD_MODELS: dict[EventKind, type[BaseModel]] = {
    EventKind.LOGIN_BONUS: LoginBonusPayload,
    EventKind.EXP_GAIN: ExpGainPayload,
    EventKind.LEVEL_UP: LevelUpPayload,
    EventKind.ITEM_EXCHANGE: ItemExchangePayload,
    EventKind.GACHA_PLAY: GachaPayload,
    EventKind.GACHA_DUPLICATE: GachaPayload,
    EventKind.GACHA_10: Gacha10Payload,
    EventKind.MISSION_CLAIM: MissionClaimPayload,
    EventKind.BADGE_AWARD: BadgeAwardPayload,
    EventKind.AVATAR_SAVE: AvatarSavePayload,
    EventKind.PROFILE_SAVE: ProfileSavePayload,
    EventKind.POINT_GRANT: PointGrantPayload,
    EventKind.TYPING_COMPLETE: CompletionPayload,
    EventKind.ARITHMETIC_COMPLETE: CompletionPayload,
}


def build_event(
    user_id: int,
    kind: EventKind,
    payload: BaseModel | dict[str, Any],
    now: datetime | None = None,
) -> EventLog:
    """Validate ``payload`` against the model for ``kind`` and build an unsaved entry."""
    model = PAYLOAD_MODELS[kind]
    if isinstance(payload, BaseModel):
        if not isinstance(payload, model):
            msg = f"{type(payload).__name__} is not a valid payload for {kind.value}"
            raise TypeError(msg)
        validated = payload
    else:
        validated = model.model_validate(payload)
    return EventLog(
        user_id=user_id,
        kind=kind.value,
        payload=validated.model_dump(),
        created_at=as_utc(now) if now else datetime.now(timezone.utc),
    )


def append_event(
    db: AsyncSession,
    user_id: int,
    kind: EventKind,
    payload: BaseModel | dict[str, Any],
    now: datetime | None = None,
) -> EventLog:
    """Add a validated entry to the session. Committed by the caller."""
    entry = build_event(user_id, kind, payload, now)
    db.add(entry)
    return entry


def read_payload(entry: EventLog) -> BaseModel:
    """Parse an entry's payload into its typed model."""
    return PAYLOAD_MODELS[EventKind(entry.kind)].model_validate(entry.payload or {})


def event_amount(entry: EventLog) -> int:
    """The ``amount`` field of a payload, 0 when the kind has none."""
    value = (entry.payload or {}).get("amount", 0)
    return int(value) if isinstance(value, (int, float)) else 0


def gacha_play_count(entries: list[EventLog]) -> int:
    """Gacha plays, counting a ten-pull as ten."""
    count = 0
    for entry in entries:
        if entry.kind in (EventKind.GACHA_PLAY.value, EventKind.GACHA_DUPLICATE.value):
            count += 1
        elif entry.kind == EventKind.GACHA_10.value:
            count += 10
    return count


def render_message(entry: EventLog) -> str:
    """Human-readable text for an entry, derived from its structured payload."""
    payload: Any = read_payload(entry)
    kind = EventKind(entry.kind)

    if kind is EventKind.LOGIN_BONUS:
        return f"Login bonus: +{payload.amount} EXP"
    if kind is EventKind.EXP_GAIN:
        label = payload.source.replace("_", " ")
        return f"Earned +{payload.amount} EXP from {label}"
    if kind is EventKind.LEVEL_UP:
        return f"Reached level {payload.level}!"
    if kind is EventKind.ITEM_EXCHANGE:
        return f"Exchanged {payload.cost} points for {payload.item_name}"
    if kind is EventKind.GACHA_PLAY:
        return f"Gacha: got {payload.item_name} [{payload.rarity}]"
    if kind is EventKind.GACHA_DUPLICATE:
        return f"Gacha: {payload.item_name} [{payload.rarity}] again, +{payload.points} points"
    if kind is EventKind.GACHA_10:
        return f"10x gacha: {len(payload.new_item_ids)} new items, +{payload.points} points"
    if kind is EventKind.MISSION_CLAIM:
        unit = "EXP" if payload.reward_type == "exp" else "points"
        return f"Mission {payload.mission_id} cleared: +{payload.amount} {unit}"
    if kind is EventKind.BADGE_AWARD:
        return f'Earned badge "{payload.badge_name}"'
    if kind is EventKind.AVATAR_SAVE:
        return "Updated avatar"
    if kind is EventKind.PROFILE_SAVE:
        return "Updated profile"
    if kind is EventKind.POINT_GRANT:
        unit = "EXP" if payload.kind == "exp" else "points"
        suffix = f" ({payload.reason})" if payload.reason else ""
        return f"Received +{payload.amount} {unit} from teacher{suffix}"
    return f"Completed {payload.source.replace('_', ' ')}"


async def fetch_events(
    db: AsyncSession,
    *,
    user_id: int | None = None,
    since: datetime | None = None,
    kinds: list[EventKind] | None = None,
) -> list[EventLog]:
    """Events in append order, optionally filtered by user, start time and kind."""
    query = select(EventLog).order_by(EventLog.id)
    if user_id is not None:
        query = query.where(EventLog.user_id == user_id)
    if since is not None:
        query = query.where(EventLog.created_at >= as_utc(since))
    if kinds:
        query = query.where(EventLog.kind.in_([k.value for k in kinds]))
    result = await db.execute(query)
    return list(result.scalars().unique().all())


async def recent_activity(
    db: AsyncSession,
    limit: int = 20,
    user_id: int | None = None,
) -> list[dict]:
    """Newest visible entries rendered for display."""
    hidden = [k.value for k in INTERNAL_KINDS]
    query = select(EventLog).where(EventLog.kind.not_in(hidden))
    if user_id is not None:
        query = query.where(EventLog.user_id == user_id)
    result = await db.execute(query.order_by(EventLog.id.desc()).limit(limit))
    return [
        {
            "id": entry.id,
            "user_id": entry.user_id,
            "nickname": entry.user.nickname if entry.user else "",
            "kind": entry.kind,
            "message": render_message(entry),
            "created_at": as_utc(entry.created_at).isoformat(),
        }
        for entry in result.scalars().unique()
    ]
