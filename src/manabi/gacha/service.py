"""Gacha plays and point exchange.

Every operation runs under the user's lock, re-reads the user, validates
balance and catalog, and only then mutates balances and inventory. One
commit per operation.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.db.models import InventoryEntry, Item, User
from manabi.errors import GameError, InsufficientBalanceError, NotFoundError
from manabi.gacha.engine import CatalogItem, DrawResult, draw_item, duplicate_points
from manabi.gamification.event_log import (
    EventKind,
    Gacha10Payload,
    GachaPayload,
    ItemExchangePayload,
    append_event,
)
from manabi.gamification.game_config import load_game_config
from manabi.gamification.locks import user_lock

logger = logging.getLogger(__name__)

TEN_PULL_SIZE = 10


async def load_catalog(db: AsyncSession) -> list[CatalogItem]:
    result = await db.execute(select(Item).order_by(Item.sort_order, Item.id))
    return [CatalogItem.from_model(item) for item in result.scalars()]


async def owned_item_ids(db: AsyncSession, user_id: int) -> set[str]:
    result = await db.execute(select(InventoryEntry.item_id).where(InventoryEntry.user_id == user_id))
    return set(result.scalars())


def _balances(user: User) -> dict:
    return {
        "spendable_exp": user.spendable_exp,
        "cumulative_exp": user.cumulative_exp,
        "exchange_points": user.exchange_points,
    }


async def play_gacha(
    db: AsyncSession,
    user: User,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> dict:
    """Spend ``gacha_cost`` spendable EXP on one draw."""
    now = now or datetime.now(timezone.utc)
    async with user_lock(user.id):
        await db.refresh(user)
        config = await load_game_config(db)
        cost = max(0, config.get_int("gacha_cost"))
        if user.spendable_exp < cost:
            raise InsufficientBalanceError("Not enough EXP to play the gacha")

        catalog = await load_catalog(db)
        item = draw_item(catalog, config, rng)
        owned = await owned_item_ids(db, user.id)

        user.spendable_exp -= cost
        if item.id in owned:
            points = duplicate_points(config, item.rarity)
            user.exchange_points += points
            result = DrawResult(item=item, is_duplicate=True, points=points)
            kind = EventKind.GACHA_DUPLICATE
        else:
            db.add(InventoryEntry(user_id=user.id, item_id=item.id, acquired_at=now))
            result = DrawResult(item=item, is_duplicate=False)
            kind = EventKind.GACHA_PLAY

        append_event(
            db,
            user.id,
            kind,
            GachaPayload(
                item_id=item.id,
                item_name=item.name,
                rarity=item.rarity or "",
                cost=cost,
                points=result.points,
            ),
            now,
        )
        await db.commit()

    logger.info("User %s drew %s [%s] duplicate=%s", user.id, item.id, item.rarity, result.is_duplicate)
    return {"result": result.as_dict(), "cost": cost, **_balances(user)}


async def play_gacha_10(
    db: AsyncSession,
    user: User,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> dict:
    """Spend ``gacha_cost_10`` on ten draws, written as one batch.

    Within the batch, only the first copy of an item the user does not
    already own goes to the inventory; every other copy converts to points.
    """
    now = now or datetime.now(timezone.utc)
    async with user_lock(user.id):
        await db.refresh(user)
        config = await load_game_config(db)
        cost = max(0, config.get_int("gacha_cost_10"))
        if user.spendable_exp < cost:
            raise InsufficientBalanceError("Not enough EXP to play the 10x gacha")

        catalog = await load_catalog(db)
        rng = rng or random.Random()
        draws = [draw_item(catalog, config, rng) for _ in range(TEN_PULL_SIZE)]
        owned = await owned_item_ids(db, user.id)

        results: list[DrawResult] = []
        new_ids: list[str] = []
        total_points = 0
        for item in draws:
            if item.id in owned:
                points = duplicate_points(config, item.rarity)
                total_points += points
                results.append(DrawResult(item=item, is_duplicate=True, points=points))
            else:
                owned.add(item.id)
                new_ids.append(item.id)
                results.append(DrawResult(item=item, is_duplicate=False))

        user.spendable_exp -= cost
        user.exchange_points += total_points
        for item_id in new_ids:
            db.add(InventoryEntry(user_id=user.id, item_id=item_id, acquired_at=now))
        append_event(
            db,
            user.id,
            EventKind.GACHA_10,
            Gacha10Payload(
                item_ids=[item.id for item in draws],
                new_item_ids=new_ids,
                cost=cost,
                points=total_points,
            ),
            now,
        )
        await db.commit()

    logger.info("User %s played 10x gacha: %d new, +%d points", user.id, len(new_ids), total_points)
    return {
        "results": [r.as_dict() for r in results],
        "cost": cost,
        "duplicate_points": total_points,
        **_balances(user),
    }


async def exchange_item(
    db: AsyncSession,
    user: User,
    item_id: str,
    now: datetime | None = None,
) -> dict:
    """Buy an exchangeable item with exchange points."""
    now = now or datetime.now(timezone.utc)
    item_id = (item_id or "").strip()
    async with user_lock(user.id):
        await db.refresh(user)
        item = await db.get(Item, item_id) if item_id else None
        if item is None:
            raise NotFoundError("Item not found")
        if (item.cost or 0) <= 0:
            raise GameError("This item cannot be exchanged")
        if item.id in await owned_item_ids(db, user.id):
            raise GameError("You already own this item")
        if user.exchange_points < item.cost:
            raise InsufficientBalanceError("Not enough exchange points")

        user.exchange_points -= item.cost
        db.add(InventoryEntry(user_id=user.id, item_id=item.id, acquired_at=now))
        append_event(
            db,
            user.id,
            EventKind.ITEM_EXCHANGE,
            ItemExchangePayload(item_id=item.id, item_name=item.name, cost=item.cost),
            now,
        )
        await db.commit()

    logger.info("User %s exchanged %d points for %s", user.id, item.cost, item.id)
    return {"item": CatalogItem.from_model(item).as_dict(), **_balances(user)}
