"""Teacher console endpoints. Every route requires the teacher role."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.auth.dependencies import require_teacher
from manabi.classroom.schemas import AnnouncementRequest, GrantRequest, SettingsUpdateRequest
from manabi.classroom.service import (
    delete_announcement,
    get_student_details,
    get_teacher_data,
    grant_points,
    post_announcement,
    update_config_settings,
)
from manabi.database import get_session
from manabi.db.models import User
from manabi.gamification.ingestion import run_ingestion

router = APIRouter(prefix="/api/v1/classroom", tags=["Classroom"])


@router.get("")
async def teacher_data(
    _teacher: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"success": True, **await get_teacher_data(db)}


@router.get("/students/{user_id}")
async def student_details(
    user_id: int,
    _teacher: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"success": True, **await get_student_details(db, user_id)}


@router.post("/grants")
async def grants(
    body: GrantRequest,
    teacher: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> dict:
    result = await grant_points(db, teacher, body.user_ids, body.kind, body.amount, body.reason)
    return {"success": True, **result}


@router.post("/announcements", status_code=201)
async def create_announcement(
    body: AnnouncementRequest,
    teacher: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"success": True, "announcement": await post_announcement(db, teacher, body.title, body.body)}


@router.delete("/announcements/{announcement_id}")
async def remove_announcement(
    announcement_id: int,
    _teacher: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> dict:
    await delete_announcement(db, announcement_id)
    return {"success": True}


@router.put("/settings")
async def update_settings(
    body: SettingsUpdateRequest,
    _teacher: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"success": True, "settings": await update_config_settings(db, body.settings)}


@router.post("/ingestion")
async def ingest_now(
    _teacher: User = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Run one ingestion pass immediately."""
    report = await run_ingestion(db)
    return {"success": True, "report": report.as_dict()}
