"""Student game endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.auth.dependencies import get_current_user
from manabi.database import get_session
from manabi.db.models import User
from manabi.gacha.service import exchange_item, play_gacha, play_gacha_10
from manabi.game.schemas import AvatarUpdateRequest, ProfileUpdateRequest
from manabi.game.service import get_game_data, save_avatar, save_profile
from manabi.gamification.missions import claim_mission_reward

router = APIRouter(prefix="/api/v1/game", tags=["Game"])


@router.get("")
async def game_data(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Profile, inventory, missions, badges, rankings and activity in one payload."""
    return {"success": True, **await get_game_data(db, user)}


@router.put("/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"success": True, **await save_profile(db, user, body.model_dump())}


@router.put("/avatar")
async def update_avatar(
    body: AvatarUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"success": True, **await save_avatar(db, user, body.slots)}


@router.post("/missions/{mission_id}/claim")
async def claim_mission(
    mission_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"success": True, **await claim_mission_reward(db, user, mission_id)}


@router.post("/gacha")
async def gacha(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"success": True, **await play_gacha(db, user)}


@router.post("/gacha/10")
async def gacha_10(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"success": True, **await play_gacha_10(db, user)}


@router.post("/exchange/{item_id}")
async def exchange(
    item_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return {"success": True, **await exchange_item(db, user, item_id)}
