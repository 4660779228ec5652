"""Experience formulas for each learning-record type.

All arithmetic runs on ``Decimal`` so that values such as ``0.1 * 300`` floor
to what a teacher would compute by hand.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

from manabi.gamification.game_config import GameConfig


def _dec(value: object) -> Decimal:
    if value is None or value == "":
        return Decimal(0)
    return Decimal(str(value))


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def flat_exp(config: GameConfig, key: str) -> int:
    """Constant award read from ``key``."""
    return max(0, config.get_int(key))


def scored_reflection_exp(score1: object, score2: object, coef: Decimal) -> int:
    """floor(coef * score1^2) + floor(coef * score2^2). Missing scores count as 0."""
    total = 0
    for score in (score1, score2):
        s = _dec(score)
        total += _floor(coef * s * s)
    return max(0, total)


def typing_exp(speed: object, accuracy: object, coef: Decimal) -> int:
    """floor(speed * accuracy / 100 * coef)."""
    return max(0, _floor(_dec(speed) * _dec(accuracy) / Decimal(100) * coef))


def arithmetic_exp(score: object, time_seconds: object, divisor: Decimal) -> int:
    """max(0, score - floor(time / divisor)). A non-positive divisor disables the time penalty."""
    penalty = 0 if divisor <= 0 else _floor(_dec(time_seconds) / divisor)
    return max(0, _floor(_dec(score)) - penalty)


def reading_exp(pages: object, coef: Decimal) -> int:
    """floor(pages * coef)."""
    return max(0, _floor(_dec(pages) * coef))
