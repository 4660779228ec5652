"""Mission evaluation and reward claims."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from manabi.db.models import MissionDefinition
from manabi.errors import ConfigurationError, GameError, NotFoundError
from manabi.gamification.event_log import EventKind, ExpGainPayload, append_event
from manabi.gamification.game_config import load_game_config
from manabi.gamification.missions import check_missions, claim_mission_reward
from manabi.gamification.seed import MISSION_SEED_DATA, seed_catalog
from manabi.gamification.xp_service import apply_login_bonus, get_or_create_user

# Wednesday; the week runs from Monday 2026-10-12
NOW = datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc)


def _state(states: list[dict], mission_id: str) -> dict:
    return next(s for s in states if s["id"] == mission_id)


async def _login(db, user, now=NOW):
    config = await load_game_config(db)
    apply_login_bonus(db, user, config, now)
    await db.commit()


class TestCheckMissions:
    @pytest.mark.asyncio
    async def test_fresh_student_has_nothing_complete(self, seeded_db, student):
        states = await check_missions(seeded_db, student, now=NOW)
        assert states
        assert not any(s["is_complete"] for s in states)
        assert not any(s["is_claimed"] for s in states)

    @pytest.mark.asyncio
    async def test_login_completes_daily_login(self, seeded_db, student):
        await _login(seeded_db, student)

        state = _state(await check_missions(seeded_db, student, now=NOW), "daily_login")
        assert state["progress"] == 1
        assert state["is_complete"] is True

    @pytest.mark.asyncio
    async def test_daily_window_resets_next_day(self, seeded_db, student):
        await _login(seeded_db, student)

        tomorrow = NOW + timedelta(days=1)
        state = _state(await check_missions(seeded_db, student, now=tomorrow), "daily_login")
        assert state["progress"] == 0

    @pytest.mark.asyncio
    async def test_progress_is_capped_at_target(self, seeded_db, student):
        for record_id in range(3):
            append_event(
                seeded_db,
                student.id,
                EventKind.EXP_GAIN,
                ExpGainPayload(amount=5, source="class_reflection", record_id=record_id),
                NOW,
            )
        await seeded_db.commit()

        state = _state(await check_missions(seeded_db, student, now=NOW), "daily_record")
        assert state["progress"] == state["target"] == 1
        assert state["is_complete"] is True

    @pytest.mark.asyncio
    async def test_weekly_counts_from_monday(self, seeded_db, student):
        sunday_before = datetime(2026, 10, 11, 23, 0, tzinfo=timezone.utc)
        monday = datetime(2026, 10, 12, 0, 0, tzinfo=timezone.utc)
        for when, pages in ((sunday_before, 1), (monday, 2)):
            append_event(
                seeded_db,
                student.id,
                EventKind.EXP_GAIN,
                ExpGainPayload(amount=pages, source="reading_log", record_id=pages),
                when,
            )
        await seeded_db.commit()

        state = _state(await check_missions(seeded_db, student, now=NOW), "weekly_reading_3")
        assert state["progress"] == 1

    @pytest.mark.asyncio
    async def test_cooperative_counts_the_whole_class(self, seeded_db, student):
        db = seeded_db
        mission = await db.get(MissionDefinition, "coop_class_records_100")
        mission.target = 3
        classmate = await get_or_create_user(db, "ren@school.example", nickname="Ren")
        await db.commit()

        for user, record_id in ((student, 1), (classmate, 2), (classmate, 3)):
            append_event(
                db,
                user.id,
                EventKind.EXP_GAIN,
                ExpGainPayload(amount=10, source="self_study", record_id=record_id),
                NOW,
            )
        await db.commit()

        for user in (student, classmate):
            state = _state(await check_missions(db, user, now=NOW), "coop_class_records_100")
            assert state["progress"] == 3
            assert state["is_complete"] is True

        await claim_mission_reward(db, student, "coop_class_records_100", NOW)
        mine = _state(await check_missions(db, student, now=NOW), "coop_class_records_100")
        theirs = _state(await check_missions(db, classmate, now=NOW), "coop_class_records_100")
        assert mine["is_claimed"] is True
        assert theirs["is_claimed"] is False

    @pytest.mark.asyncio
    async def test_disabled_mission_is_hidden(self, seeded_db, student):
        mission = await seeded_db.get(MissionDefinition, "daily_login")
        mission.enabled = False
        await seeded_db.commit()

        ids = [s["id"] for s in await check_missions(seeded_db, student, now=NOW)]
        assert "daily_login" not in ids


class TestClaimMissionReward:
    @pytest.mark.asyncio
    async def test_claim_exp_reward(self, seeded_db, student):
        await _login(seeded_db, student)

        result = await claim_mission_reward(seeded_db, student, "daily_login", NOW)

        assert result["reward_type"] == "exp"
        assert result["amount"] == 5
        await seeded_db.refresh(student)
        assert student.cumulative_exp == 15
        assert student.spendable_exp == 15

        state = _state(await check_missions(seeded_db, student, now=NOW), "daily_login")
        assert state["is_claimed"] is True

    @pytest.mark.asyncio
    async def test_claim_points_reward(self, seeded_db, student):
        from manabi.gamification.event_log import CompletionPayload

        append_event(
            seeded_db,
            student.id,
            EventKind.TYPING_COMPLETE,
            CompletionPayload(source="typing_practice", record_id=1),
            NOW,
        )
        await seeded_db.commit()

        result = await claim_mission_reward(seeded_db, student, "daily_typing", NOW)

        assert result["exchange_points"] == 1
        await seeded_db.refresh(student)
        assert student.exchange_points == 1
        assert student.cumulative_exp == 0

    @pytest.mark.asyncio
    async def test_second_claim_is_rejected(self, seeded_db, student):
        await _login(seeded_db, student)
        await claim_mission_reward(seeded_db, student, "daily_login", NOW)

        with pytest.raises(GameError, match="already claimed"):
            await claim_mission_reward(seeded_db, student, "daily_login", NOW)

        await seeded_db.refresh(student)
        assert student.cumulative_exp == 15

    @pytest.mark.asyncio
    async def test_claim_again_in_next_window(self, seeded_db, student):
        await _login(seeded_db, student)
        await claim_mission_reward(seeded_db, student, "daily_login", NOW)

        tomorrow = NOW + timedelta(days=1)
        await _login(seeded_db, student, tomorrow)
        result = await claim_mission_reward(seeded_db, student, "daily_login", tomorrow)
        assert result["amount"] == 5

    @pytest.mark.asyncio
    async def test_incomplete_mission_is_rejected(self, seeded_db, student):
        with pytest.raises(GameError, match="not complete"):
            await claim_mission_reward(seeded_db, student, "daily_record", NOW)

    @pytest.mark.asyncio
    async def test_unknown_mission(self, seeded_db, student):
        with pytest.raises(NotFoundError):
            await claim_mission_reward(seeded_db, student, "no_such_mission", NOW)


class TestMissionSeeding:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", [0, -3])
    async def test_non_positive_target_is_rejected(self, db_session, target):
        missions = [dict(MISSION_SEED_DATA[0], target=target)]
        with pytest.raises(ConfigurationError, match="positive target"):
            await seed_catalog(db_session, missions=missions)

        assert await db_session.get(MissionDefinition, MISSION_SEED_DATA[0]["id"]) is None
