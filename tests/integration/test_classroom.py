"""Teacher console operations."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from manabi.classroom import service
from manabi.classroom.service import (
    delete_announcement,
    get_student_details,
    get_teacher_data,
    grant_points,
    post_announcement,
    update_config_settings,
)
from manabi.errors import GameError, NotFoundError
from manabi.gamification.event_log import EventKind, fetch_events
from manabi.gamification.game_config import load_game_config
from manabi.gamification.xp_service import get_or_create_user

NOW = datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc)


class TestGrantPoints:
    @pytest.mark.asyncio
    async def test_grant_exp_reports_unknown_ids(self, seeded_db, teacher, student):
        result = await grant_points(seeded_db, teacher, [student.id, 9999], "exp", 20, "Helping out", NOW)

        assert result["granted"] == [student.id]
        assert result["errors"] == [{"user_id": 9999, "message": "User not found"}]
        await seeded_db.refresh(student)
        assert student.cumulative_exp == 20
        assert student.spendable_exp == 20

        grants = await fetch_events(seeded_db, user_id=student.id, kinds=[EventKind.POINT_GRANT])
        assert grants[0].payload["granted_by"] == teacher.id
        assert grants[0].payload["reason"] == "Helping out"

    @pytest.mark.asyncio
    async def test_grant_points_leaves_exp_alone(self, seeded_db, teacher, student):
        await grant_points(seeded_db, teacher, [student.id], "points", 7, now=NOW)

        await seeded_db.refresh(student)
        assert student.exchange_points == 7
        assert student.cumulative_exp == 0

    @pytest.mark.asyncio
    async def test_large_exp_grant_levels_up(self, seeded_db, teacher, student):
        await grant_points(seeded_db, teacher, [student.id], "exp", 100, now=NOW)

        level_ups = await fetch_events(seeded_db, user_id=student.id, kinds=[EventKind.LEVEL_UP])
        assert [e.payload["level"] for e in level_ups] == [2]

    @pytest.mark.asyncio
    async def test_rejects_bad_kind_and_amount(self, seeded_db, teacher, student):
        with pytest.raises(GameError):
            await grant_points(seeded_db, teacher, [student.id], "gold", 5)
        with pytest.raises(GameError):
            await grant_points(seeded_db, teacher, [student.id], "exp", 0)

    @pytest.mark.asyncio
    async def test_failed_write_is_reported_and_others_continue(self, seeded_db, teacher, student, monkeypatch):
        other = await get_or_create_user(seeded_db, "sora@school.example")
        await seeded_db.commit()
        student_id, other_id = student.id, other.id
        real_credit = service.credit_experience

        def _flaky_credit(db, user, amount, config, now=None):
            if user.id == student_id:
                raise OperationalError("UPDATE users", {}, Exception("database is locked"))
            return real_credit(db, user, amount, config, now)

        monkeypatch.setattr(service, "credit_experience", _flaky_credit)
        result = await grant_points(seeded_db, teacher, [student_id, other_id], "exp", 15, "Cleanup", NOW)

        assert result["granted"] == [other_id]
        assert result["errors"] == [{"user_id": student_id, "message": "Grant failed"}]
        await seeded_db.refresh(student)
        await seeded_db.refresh(other)
        assert student.cumulative_exp == 0
        assert other.cumulative_exp == 15
        assert await fetch_events(seeded_db, user_id=student_id, kinds=[EventKind.POINT_GRANT]) == []


class TestSettings:
    @pytest.mark.asyncio
    async def test_update_settings(self, seeded_db, teacher):
        saved = await update_config_settings(seeded_db, {"gacha_cost": 150, "typing_coef": "0.2"})

        assert saved == {"gacha_cost": "150", "typing_coef": "0.2"}
        config = await load_game_config(seeded_db)
        assert config.get_int("gacha_cost") == 150

    @pytest.mark.asyncio
    async def test_invalid_update_writes_nothing(self, seeded_db, teacher):
        with pytest.raises(GameError):
            await update_config_settings(seeded_db, {"gacha_cost": 150, "reading_coef": "many"})

        config = await load_game_config(seeded_db)
        assert config.get_int("gacha_cost") == 100

    @pytest.mark.asyncio
    async def test_unknown_key(self, seeded_db, teacher):
        with pytest.raises(GameError, match="Unknown setting"):
            await update_config_settings(seeded_db, {"free_money": 1})


class TestAnnouncements:
    @pytest.mark.asyncio
    async def test_post_and_delete(self, seeded_db, teacher):
        posted = await post_announcement(seeded_db, teacher, " Sports day ", "Bring water")
        assert posted["title"] == "Sports day"

        data = await get_teacher_data(seeded_db)
        assert [a["id"] for a in data["announcements"]] == [posted["id"]]

        await delete_announcement(seeded_db, posted["id"])
        data = await get_teacher_data(seeded_db)
        assert data["announcements"] == []

    @pytest.mark.asyncio
    async def test_delete_unknown(self, seeded_db, teacher):
        with pytest.raises(NotFoundError):
            await delete_announcement(seeded_db, 12345)

    @pytest.mark.asyncio
    async def test_blank_title(self, seeded_db, teacher):
        with pytest.raises(GameError):
            await post_announcement(seeded_db, teacher, "   ", "")


class TestOverview:
    @pytest.mark.asyncio
    async def test_teacher_data_lists_students_only(self, seeded_db, teacher, student):
        data = await get_teacher_data(seeded_db)
        assert [s["email"] for s in data["students"]] == [student.email]
        assert data["settings"]["gacha_cost"] == "100"

    @pytest.mark.asyncio
    async def test_student_details(self, seeded_db, teacher, student):
        await grant_points(seeded_db, teacher, [student.id], "exp", 20, "Helping out", NOW)

        details = await get_student_details(seeded_db, student.id)
        assert details["profile"]["cumulative_exp"] == 20
        assert details["activity"][0]["message"] == "Received +20 EXP from teacher (Helping out)"

    @pytest.mark.asyncio
    async def test_student_details_unknown(self, seeded_db, teacher):
        with pytest.raises(NotFoundError):
            await get_student_details(seeded_db, 9999)
