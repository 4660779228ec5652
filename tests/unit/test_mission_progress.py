"""Mission condition-key progress over in-memory events."""

from __future__ import annotations

from manabi.db.models import EventLog, MissionDefinition
from manabi.gamification.event_log import EventKind
from manabi.gamification.missions import compute_progress, is_active


def _event(kind: EventKind, **payload) -> EventLog:
    return EventLog(user_id=1, kind=kind.value, payload=payload)


EVENTS = [
    _event(EventKind.LOGIN_BONUS, amount=10),
    _event(EventKind.EXP_GAIN, amount=30, source="reading_log", record_id=1),
    _event(EventKind.EXP_GAIN, amount=12, source="typing_practice", record_id=2),
    _event(EventKind.TYPING_COMPLETE, source="typing_practice", record_id=2),
    _event(EventKind.ARITHMETIC_COMPLETE, source="arithmetic_drill", record_id=3),
    _event(EventKind.GACHA_PLAY, item_id="a", item_name="A", rarity="N", cost=100),
    _event(EventKind.GACHA_DUPLICATE, item_id="a", item_name="A", rarity="N", cost=100, points=1),
    _event(EventKind.GACHA_10, item_ids=[], new_item_ids=[], cost=1000, points=0),
    _event(EventKind.LEVEL_UP, level=2, previous_level=1),
    _event(EventKind.BADGE_AWARD, badge_id="b", badge_name="B"),
]


class TestComputeProgress:
    def test_login(self):
        assert compute_progress("login", EVENTS) == 1

    def test_exp_total_sums_amounts(self):
        assert compute_progress("exp_total", EVENTS) == 42

    def test_exp_count(self):
        assert compute_progress("exp_count", EVENTS) == 2

    def test_gacha_counts_ten_pull_as_ten(self):
        assert compute_progress("gacha", EVENTS) == 12

    def test_completion_markers(self):
        assert compute_progress("typing", EVENTS) == 1
        assert compute_progress("arithmetic", EVENTS) == 1

    def test_record_source(self):
        assert compute_progress("record:reading_log", EVENTS) == 1
        assert compute_progress("record:self_study", EVENTS) == 0

    def test_level_up_and_badge(self):
        assert compute_progress("level_up", EVENTS) == 1
        assert compute_progress("badge", EVENTS) == 1

    def test_unknown_key_scores_zero(self):
        assert compute_progress("mystery", EVENTS) == 0

    def test_key_is_trimmed(self):
        assert compute_progress("  login ", EVENTS) == 1


class TestIsActive:
    def test_disabled(self):
        assert not is_active(MissionDefinition(id="m", title="t", cadence="daily", condition_key="login", enabled=False))

    def test_blank_condition_key(self):
        assert not is_active(MissionDefinition(id="m", title="t", cadence="daily", condition_key="  ", enabled=True))

    def test_active(self):
        assert is_active(MissionDefinition(id="m", title="t", cadence="daily", condition_key="login", enabled=True))
