"""Game tuning constants loaded from the ``game_settings`` table.

Stored values override ``DEFAULT_GAME_CONFIG``. The map is read fresh for every
operation; nothing is cached between requests.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.db.models import GameSetting
from manabi.errors import ConfigurationError

DEFAULT_GAME_CONFIG: dict[str, str] = {
    # Levels
    "level_base": "100",
    "level_increment": "50",
    # Login bonus
    "login_bonus_exp": "10",
    # Gacha
    "gacha_cost": "100",
    "gacha_cost_10": "1000",
    "gacha_weight_n": "70",
    "gacha_weight_r": "25",
    "gacha_weight_sr": "5",
    "duplicate_points_n": "1",
    "duplicate_points_r": "3",
    "duplicate_points_sr": "10",
    # Learning-record formulas
    "exp_class_reflection": "10",
    "test_reflection_coef": "0.01",
    "exp_moral_note": "10",
    "typing_coef": "0.1",
    "arithmetic_time_divisor": "10",
    "reading_coef": "1",
    "exp_self_study": "10",
    "exp_growth_log": "10",
}


class GameConfig(Mapping[str, str]):
    """Read-only view over the flat settings map with typed accessors."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        merged = dict(DEFAULT_GAME_CONFIG)
        if values:
            merged.update({k: str(v) for k, v in values.items()})
        self._values = merged

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get_decimal(self, key: str) -> Decimal:
        raw = self._values.get(key)
        if raw is None:
            msg = f"Setting '{key}' is not configured"
            raise ConfigurationError(msg)
        try:
            value = Decimal(raw.strip())
        except InvalidOperation as e:
            msg = f"Setting '{key}' must be a number (got '{raw}')"
            raise ConfigurationError(msg) from e
        if not value.is_finite():
            msg = f"Setting '{key}' must be a finite number (got '{raw}')"
            raise ConfigurationError(msg)
        return value

    def get_int(self, key: str) -> int:
        return int(self.get_decimal(key))

    def get_float(self, key: str) -> float:
        return float(self.get_decimal(key))


def validate_setting(key: str, value: object) -> str:
    """Normalize one incoming setting. Raises ConfigurationError for unknown keys or bad values."""
    if key not in DEFAULT_GAME_CONFIG:
        msg = f"Unknown setting '{key}'"
        raise ConfigurationError(msg)
    text = str(value).strip()
    GameConfig({key: text}).get_decimal(key)
    return text


async def load_game_config(db: AsyncSession) -> GameConfig:
    """Read the settings table into a fresh GameConfig."""
    result = await db.execute(select(GameSetting))
    return GameConfig({row.key: row.value for row in result.scalars()})


async def save_game_settings(db: AsyncSession, values: Mapping[str, object]) -> dict[str, str]:
    """Validate and upsert settings. All keys are checked before anything is written."""
    normalized = {key: validate_setting(key, value) for key, value in values.items()}

    result = await db.execute(select(GameSetting).where(GameSetting.key.in_(list(normalized))))
    existing = {row.key: row for row in result.scalars()}
    for key, value in normalized.items():
        if key in existing:
            existing[key].value = value
        else:
            db.add(GameSetting(key=key, value=value))
    await db.flush()
    return normalized
