"""Weighted-random gacha draws.

A draw first picks a rarity bucket (``N``, ``R``, ``SR``) by weight, then an
item uniformly inside that bucket. When the bucket is empty or every weight
is zero, the item is drawn uniformly from the whole gacha catalog instead.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass

from manabi.db.models import Item
from manabi.errors import ConfigurationError
from manabi.gamification.game_config import GameConfig

logger = logging.getLogger(__name__)

RARITIES: tuple[str, ...] = ("N", "R", "SR")


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    category: str
    rarity: str | None
    cost: int = 0
    image: str = ""

    @classmethod
    def from_model(cls, item: Item) -> CatalogItem:
        return cls(
            id=item.id,
            name=item.name,
            category=item.category,
            rarity=item.rarity,
            cost=item.cost or 0,
            image=item.image or "",
        )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "rarity": self.rarity,
            "cost": self.cost,
            "image": self.image,
        }


@dataclass(frozen=True)
class DrawResult:
    item: CatalogItem
    is_duplicate: bool
    points: int = 0

    def as_dict(self) -> dict:
        return {**self.item.as_dict(), "is_duplicate": self.is_duplicate, "points": self.points}


def rarity_weights(config: GameConfig) -> dict[str, float]:
    """Per-rarity weights from ``gacha_weight_<rarity>``, negatives clamped to 0."""
    return {r: max(0.0, config.get_float(f"gacha_weight_{r.lower()}")) for r in RARITIES}


def pick_rarity(weights: dict[str, float], rng: random.Random | None = None) -> str | None:
    """Sample a rarity by weight; None when all weights are zero."""
    rng = rng or random
    total = sum(max(0.0, w) for w in weights.values())
    if total <= 0:
        return None
    roll = rng.random() * total
    for rarity in RARITIES:
        weight = max(0.0, weights.get(rarity, 0.0))
        if roll < weight:
            return rarity
        roll -= weight
    # Float rounding can leave roll a hair above the last bucket
    return next(r for r in reversed(RARITIES) if weights.get(r, 0.0) > 0)


def draw_item(
    catalog: Sequence[CatalogItem],
    config: GameConfig,
    rng: random.Random | None = None,
) -> CatalogItem:
    """Draw one item from the rarity-bearing part of ``catalog``."""
    rng = rng or random.Random()
    pool = [item for item in catalog if item.rarity in RARITIES]
    if not pool:
        raise ConfigurationError("The gacha catalog is empty")

    rarity = pick_rarity(rarity_weights(config), rng)
    bucket = [item for item in pool if item.rarity == rarity] if rarity else []
    if not bucket:
        logger.debug("Rarity bucket %s empty, drawing from the whole catalog", rarity)
        bucket = pool
    return rng.choice(bucket)


def duplicate_points(config: GameConfig, rarity: str | None) -> int:
    """Exchange points granted for a duplicate of ``rarity``."""
    if rarity not in RARITIES:
        return 0
    return max(0, config.get_int(f"duplicate_points_{rarity.lower()}"))
