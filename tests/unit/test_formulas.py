"""Experience formula tests for each learning-record type."""

from decimal import Decimal

import pytest

from manabi.errors import ConfigurationError
from manabi.gamification.formulas import (
    arithmetic_exp,
    flat_exp,
    reading_exp,
    scored_reflection_exp,
    typing_exp,
)
from manabi.gamification.game_config import GameConfig


class TestScoredReflection:
    def test_squares_each_score(self):
        # floor(0.01 * 80^2) + floor(0.01 * 90^2) = 64 + 81
        assert scored_reflection_exp(80, 90, Decimal("0.01")) == 145

    def test_missing_second_score(self):
        assert scored_reflection_exp(100, None, Decimal("0.01")) == 100

    def test_floors_each_term_separately(self):
        # 0.01 * 55^2 = 30.25 -> 30, twice
        assert scored_reflection_exp(55, 55, Decimal("0.01")) == 60

    def test_zero_scores(self):
        assert scored_reflection_exp(0, 0, Decimal("0.01")) == 0


class TestTyping:
    def test_speed_times_accuracy(self):
        # 200 * 95/100 * 0.1 = 19
        assert typing_exp(200, 95, Decimal("0.1")) == 19

    def test_no_float_drift(self):
        # 300 * 100/100 * 0.1 is exactly 30 in decimal arithmetic
        assert typing_exp(300, 100, Decimal("0.1")) == 30

    def test_floors_fractional_result(self):
        assert typing_exp(123, 87.5, Decimal("0.1")) == 10


class TestArithmetic:
    def test_time_penalty(self):
        # 50 - floor(95 / 10) = 41
        assert arithmetic_exp(50, 95, Decimal(10)) == 41

    def test_never_negative(self):
        assert arithmetic_exp(5, 600, Decimal(10)) == 0

    @pytest.mark.parametrize("divisor", [Decimal(0), Decimal(-5)])
    def test_non_positive_divisor_disables_penalty(self, divisor):
        assert arithmetic_exp(42, 999, divisor) == 42


class TestReadingAndFlat:
    def test_reading_pages(self):
        assert reading_exp(37, Decimal(1)) == 37
        assert reading_exp(37, Decimal("0.5")) == 18

    def test_flat_reads_config(self):
        assert flat_exp(GameConfig({"exp_moral_note": "12"}), "exp_moral_note") == 12

    def test_flat_clamps_negative(self):
        assert flat_exp(GameConfig({"exp_moral_note": "-3"}), "exp_moral_note") == 0

    def test_flat_rejects_bad_value(self):
        with pytest.raises(ConfigurationError):
            flat_exp(GameConfig({"exp_moral_note": "ten"}), "exp_moral_note")
