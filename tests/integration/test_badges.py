"""Badge awarding against seeded badge definitions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from manabi.db.models import AvatarComposition, InventoryEntry, TestReflection, TypingPractice
from manabi.gamification.badge_service import check_and_award_badges, get_earned_badge_ids
from manabi.gamification.event_log import (
    EventKind,
    ExpGainPayload,
    Gacha10Payload,
    GachaPayload,
    LoginBonusPayload,
    MissionClaimPayload,
    append_event,
    fetch_events,
)
from manabi.gamification.seed import AVATAR_SLOTS, ITEM_SEED_DATA

NOW = datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc)


def _ids(badges: list[dict]) -> list[str]:
    return [b["id"] for b in badges]


class TestCheckAndAwardBadges:
    @pytest.mark.asyncio
    async def test_nothing_earned_for_new_student(self, seeded_db, student):
        state = await check_and_award_badges(seeded_db, student, NOW)
        assert state == {"earned": [], "newly_awarded": []}

    @pytest.mark.asyncio
    async def test_profile_badge_awarded_once(self, seeded_db, student):
        student.favorite_subject = "science"
        student.goal = "read 20 books"
        student.comment = "hello"
        await seeded_db.commit()

        first = await check_and_award_badges(seeded_db, student, NOW)
        assert _ids(first["newly_awarded"]) == ["profile_complete"]

        second = await check_and_award_badges(seeded_db, student, NOW)
        assert second["newly_awarded"] == []
        assert _ids(second["earned"]) == ["profile_complete"]

        awards = await fetch_events(seeded_db, user_id=student.id, kinds=[EventKind.BADGE_AWARD])
        assert len(awards) == 1
        assert awards[0].payload == {"badge_id": "profile_complete", "badge_name": "All About Me"}

    @pytest.mark.asyncio
    async def test_record_metrics(self, seeded_db, student):
        seeded_db.add(TypingPractice(email=student.email, speed=120, accuracy=90))
        seeded_db.add(TestReflection(email=student.email, subject="math", score1=100, score2=80))
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)

        assert set(_ids(state["newly_awarded"])) == {"typing_speed_100", "test_perfect"}
        assert await get_earned_badge_ids(seeded_db, student.id) == {"typing_speed_100", "test_perfect"}

    @pytest.mark.asyncio
    async def test_below_threshold_is_not_awarded(self, seeded_db, student):
        seeded_db.add(TypingPractice(email=student.email, speed=99, accuracy=100))
        seeded_db.add(TestReflection(email=student.email, subject="math", score1=99, score2=100))
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert state["newly_awarded"] == []

    @pytest.mark.asyncio
    async def test_level_badge(self, seeded_db, student):
        # Level 5 starts at 100 + 150 + 200 + 250
        student.cumulative_exp = 700
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "level_5" in _ids(state["newly_awarded"])
        assert "level_10" not in _ids(state["earned"])


class TestActivityBadges:
    @pytest.mark.asyncio
    async def test_login_streak(self, seeded_db, student):
        for days_ago in range(6, -1, -1):
            append_event(seeded_db, student.id, EventKind.LOGIN_BONUS, LoginBonusPayload(amount=10),
                         NOW - timedelta(days=days_ago))
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "login_streak_7" in _ids(state["newly_awarded"])

    @pytest.mark.asyncio
    async def test_broken_streak_is_not_awarded(self, seeded_db, student):
        # Seven logins, but no login two days ago
        for days_ago in (0, 1, 3, 4, 5, 6, 7):
            append_event(seeded_db, student.id, EventKind.LOGIN_BONUS, LoginBonusPayload(amount=10),
                         NOW - timedelta(days=days_ago))
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "login_streak_7" not in _ids(state["newly_awarded"])

    @pytest.mark.asyncio
    async def test_ten_pull_counts_as_ten_plays(self, seeded_db, student):
        append_event(
            seeded_db,
            student.id,
            EventKind.GACHA_10,
            Gacha10Payload(item_ids=["hair_short"] * 10, new_item_ids=["hair_short"], cost=1000, points=9),
            NOW,
        )
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "gacha_10" in _ids(state["newly_awarded"])

    @pytest.mark.asyncio
    async def test_single_plays_below_threshold(self, seeded_db, student):
        for kind in [EventKind.GACHA_PLAY] * 5 + [EventKind.GACHA_DUPLICATE] * 4:
            append_event(
                seeded_db,
                student.id,
                kind,
                GachaPayload(item_id="hair_short", item_name="Short Hair", rarity="N", cost=100),
                NOW,
            )
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "gacha_10" not in _ids(state["newly_awarded"])

        append_event(
            seeded_db,
            student.id,
            EventKind.GACHA_PLAY,
            GachaPayload(item_id="face_smile", item_name="Smile", rarity="N", cost=100),
            NOW,
        )
        await seeded_db.commit()
        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "gacha_10" in _ids(state["newly_awarded"])

    @pytest.mark.asyncio
    async def test_inventory_size(self, seeded_db, student):
        for data in ITEM_SEED_DATA[:10]:
            seeded_db.add(InventoryEntry(user_id=student.id, item_id=data["id"], acquired_at=NOW))
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "collector_10" in _ids(state["newly_awarded"])

    @pytest.mark.asyncio
    async def test_mission_claims(self, seeded_db, student):
        for i in range(5):
            append_event(
                seeded_db,
                student.id,
                EventKind.MISSION_CLAIM,
                MissionClaimPayload(mission_id=f"mission_{i}", reward_type="exp", amount=5),
                NOW,
            )
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "mission_5" in _ids(state["newly_awarded"])

    @pytest.mark.asyncio
    async def test_avatar_slots(self, seeded_db, student):
        slots = {slot: f"{slot}_item" for slot in AVATAR_SLOTS}
        slots["accessory"] = ""
        seeded_db.add(AvatarComposition(user_id=student.id, slots=slots, updated_at=NOW))
        await seeded_db.commit()

        partial = await check_and_award_badges(seeded_db, student, NOW)
        assert "avatar_full" not in _ids(partial["newly_awarded"])

        avatar = await seeded_db.get(AvatarComposition, student.id)
        avatar.slots = {slot: f"{slot}_item" for slot in AVATAR_SLOTS}
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "avatar_full" in _ids(state["newly_awarded"])

    @pytest.mark.asyncio
    async def test_log_count_filters_by_source(self, seeded_db, student):
        for i in range(9):
            append_event(seeded_db, student.id, EventKind.EXP_GAIN,
                         ExpGainPayload(amount=10, source="reading_log", record_id=i), NOW)
        append_event(seeded_db, student.id, EventKind.EXP_GAIN,
                     ExpGainPayload(amount=10, source="self_study", record_id=99), NOW)
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "bookworm_10" not in _ids(state["newly_awarded"])

        append_event(seeded_db, student.id, EventKind.EXP_GAIN,
                     ExpGainPayload(amount=10, source="reading_log", record_id=9), NOW)
        await seeded_db.commit()

        state = await check_and_award_badges(seeded_db, student, NOW)
        assert "bookworm_10" in _ids(state["newly_awarded"])
