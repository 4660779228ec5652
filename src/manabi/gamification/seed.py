"""Catalog seed data: items, missions, badges and default game settings."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from manabi.db.models import BadgeDefinition, GameSetting, Item, MissionDefinition
from manabi.errors import ConfigurationError
from manabi.gamification.game_config import DEFAULT_GAME_CONFIG

logger = logging.getLogger(__name__)

AVATAR_SLOTS = ("hair", "face", "clothes", "accessory", "background")

ITEM_SEED_DATA: list[dict] = [
    # Gacha: N
    {"id": "hair_short", "name": "Short Hair", "category": "hair", "rarity": "N", "sort_order": 1},
    {"id": "hair_ponytail", "name": "Ponytail", "category": "hair", "rarity": "N", "sort_order": 2},
    {"id": "face_smile", "name": "Smile", "category": "face", "rarity": "N", "sort_order": 3},
    {"id": "face_wink", "name": "Wink", "category": "face", "rarity": "N", "sort_order": 4},
    {"id": "clothes_tshirt", "name": "T-Shirt", "category": "clothes", "rarity": "N", "sort_order": 5},
    {"id": "clothes_uniform", "name": "School Uniform", "category": "clothes", "rarity": "N", "sort_order": 6},
    {"id": "bg_classroom", "name": "Classroom", "category": "background", "rarity": "N", "sort_order": 7},
    # Gacha: R
    {"id": "hair_braids", "name": "Braids", "category": "hair", "rarity": "R", "sort_order": 10},
    {"id": "acc_glasses", "name": "Round Glasses", "category": "accessory", "rarity": "R", "sort_order": 11},
    {"id": "clothes_hoodie", "name": "Hoodie", "category": "clothes", "rarity": "R", "sort_order": 12},
    {"id": "bg_library", "name": "Library", "category": "background", "rarity": "R", "sort_order": 13},
    # Gacha: SR
    {"id": "acc_crown", "name": "Golden Crown", "category": "accessory", "rarity": "SR", "sort_order": 20},
    {"id": "clothes_astronaut", "name": "Astronaut Suit", "category": "clothes", "rarity": "SR", "sort_order": 21},
    {"id": "bg_space", "name": "Outer Space", "category": "background", "rarity": "SR", "sort_order": 22},
    # Exchange only
    {"id": "acc_ribbon", "name": "Ribbon", "category": "accessory", "rarity": None, "cost": 5, "sort_order": 30},
    {"id": "acc_cap", "name": "Baseball Cap", "category": "accessory", "rarity": None, "cost": 10, "sort_order": 31},
    {"id": "bg_garden", "name": "School Garden", "category": "background", "rarity": None, "cost": 20, "sort_order": 32},
    {"id": "face_star", "name": "Star Eyes", "category": "face", "rarity": None, "cost": 30, "sort_order": 33},
]

MISSION_SEED_DATA: list[dict] = [
    # Daily
    {"id": "daily_login", "title": "Log in today", "cadence": "daily",
     "condition_key": "login", "target": 1, "reward_type": "exp", "reward_amount": 5, "sort_order": 1},
    {"id": "daily_record", "title": "Submit a learning record", "cadence": "daily",
     "condition_key": "exp_count", "target": 1, "reward_type": "exp", "reward_amount": 10, "sort_order": 2},
    {"id": "daily_typing", "title": "Finish a typing practice", "cadence": "daily",
     "condition_key": "typing", "target": 1, "reward_type": "points", "reward_amount": 1, "sort_order": 3},
    # Weekly
    {"id": "weekly_exp_200", "title": "Earn 200 EXP this week", "cadence": "weekly",
     "condition_key": "exp_total", "target": 200, "reward_type": "exp", "reward_amount": 50, "sort_order": 10},
    {"id": "weekly_arithmetic_5", "title": "Finish 5 arithmetic drills", "cadence": "weekly",
     "condition_key": "arithmetic", "target": 5, "reward_type": "points", "reward_amount": 3, "sort_order": 11},
    {"id": "weekly_reading_3", "title": "Log 3 reading sessions", "cadence": "weekly",
     "condition_key": "record:reading_log", "target": 3, "reward_type": "exp", "reward_amount": 30, "sort_order": 12},
    {"id": "weekly_gacha_3", "title": "Play the gacha 3 times", "cadence": "weekly",
     "condition_key": "gacha", "target": 3, "reward_type": "points", "reward_amount": 2, "sort_order": 13},
    # Cooperative
    {"id": "coop_class_records_100", "title": "Class goal: 100 learning records", "cadence": "cooperative",
     "condition_key": "exp_count", "target": 100, "reward_type": "exp", "reward_amount": 100, "sort_order": 20},
]

BADGE_SEED_DATA: list[dict] = [
    # Levels
    {"id": "level_5", "name": "Rising Star", "description": "Reach level 5",
     "condition_key": "level", "condition_params": {}, "threshold": 5, "sort_order": 1},
    {"id": "level_10", "name": "Bright Star", "description": "Reach level 10",
     "condition_key": "level", "condition_params": {}, "threshold": 10, "sort_order": 2},
    # Records
    {"id": "typing_speed_100", "name": "Swift Fingers", "description": "Type 100 characters per minute",
     "condition_key": "record_max", "condition_params": {"source": "typing_practice", "field": "speed"},
     "threshold": 100, "sort_order": 10},
    {"id": "test_perfect", "name": "Perfect Score", "description": "Score 100 on a test",
     "condition_key": "record_count", "condition_params": {"source": "test_reflection", "field": "score1", "min": 100},
     "threshold": 1, "sort_order": 11},
    {"id": "bookworm_10", "name": "Bookworm", "description": "Log 10 reading sessions",
     "condition_key": "log_count", "condition_params": {"kind": "exp_gain", "source": "reading_log"},
     "threshold": 10, "sort_order": 12},
    # Habits
    {"id": "login_streak_7", "name": "Week Warrior", "description": "Log in 7 days in a row",
     "condition_key": "login_streak", "condition_params": {}, "threshold": 7, "sort_order": 20},
    {"id": "profile_complete", "name": "All About Me", "description": "Fill in every profile field",
     "condition_key": "profile_complete", "condition_params": {}, "threshold": 1, "sort_order": 21},
    {"id": "avatar_full", "name": "Fashionista", "description": "Equip an item in every avatar slot",
     "condition_key": "avatar_slots", "condition_params": {}, "threshold": len(AVATAR_SLOTS), "sort_order": 22},
    # Economy
    {"id": "gacha_10", "name": "Lucky Dipper", "description": "Play the gacha 10 times",
     "condition_key": "gacha_count", "condition_params": {}, "threshold": 10, "sort_order": 30},
    {"id": "collector_10", "name": "Collector", "description": "Own 10 items",
     "condition_key": "inventory_size", "condition_params": {}, "threshold": 10, "sort_order": 31},
    {"id": "mission_5", "name": "Mission Hero", "description": "Claim 5 mission rewards",
     "condition_key": "mission_claims", "condition_params": {}, "threshold": 5, "sort_order": 32},
]


async def _upsert(db: AsyncSession, model: type, rows: list[dict]) -> int:
    for data in rows:
        existing = await db.get(model, data["id"])
        if existing is None:
            db.add(model(**data))
        else:
            for key, value in data.items():
                setattr(existing, key, value)
    return len(rows)


def check_mission_targets(rows: list[dict]) -> None:
    """Reject mission definitions whose target is not a positive count."""
    for data in rows:
        target = data.get("target")
        if not isinstance(target, int) or target < 1:
            msg = f"Mission {data.get('id')} needs a positive target, got {target!r}"
            raise ConfigurationError(msg)


async def seed_settings(db: AsyncSession) -> int:
    """Insert missing default settings. Existing values are left alone."""
    added = 0
    for key, value in DEFAULT_GAME_CONFIG.items():
        if await db.get(GameSetting, key) is None:
            db.add(GameSetting(key=key, value=value))
            added += 1
    return added


async def seed_catalog(db: AsyncSession, missions: list[dict] | None = None) -> dict[str, int]:
    """Upsert items, missions and badges and fill in missing settings. Idempotent."""
    missions = MISSION_SEED_DATA if missions is None else missions
    check_mission_targets(missions)
    counts = {
        "items": await _upsert(db, Item, ITEM_SEED_DATA),
        "missions": await _upsert(db, MissionDefinition, missions),
        "badges": await _upsert(db, BadgeDefinition, BADGE_SEED_DATA),
        "settings": await seed_settings(db),
    }
    await db.commit()
    logger.info("Seeded catalog: %s", counts)
    return counts
