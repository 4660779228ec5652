"""Level computation from cumulative experience.

Level 1 needs ``level_base`` experience to clear; every later level needs the
previous requirement plus ``level_increment``. Reaching a threshold exactly
moves the student to the next level.
"""

from __future__ import annotations

from collections.abc import Mapping

from manabi.gamification.game_config import GameConfig


def compute_level(total_exp: int, base: int, increment: int) -> dict:
    """Walk the staircase and return level info for ``total_exp``."""
    total_exp = max(0, int(total_exp))
    required = max(0, int(base))
    increment = max(0, int(increment))

    level = 1
    floor_exp = 0
    while total_exp - floor_exp >= required:
        if required == 0 and increment == 0:
            break
        floor_exp += required
        level += 1
        required += increment

    into_level = total_exp - floor_exp
    progress = 100 if required == 0 else (100 * into_level) // required

    return {
        "level": level,
        "progress_percent": progress,
        "exp_into_level": into_level,
        "exp_for_level": required,
        "next_level_at": floor_exp + required,
    }


def calculate_level(total_exp: int, config: GameConfig | Mapping[str, str]) -> dict:
    """Compute level info using ``level_base`` / ``level_increment`` from config."""
    if not isinstance(config, GameConfig):
        config = GameConfig(config)
    return compute_level(total_exp, config.get_int("level_base"), config.get_int("level_increment"))
