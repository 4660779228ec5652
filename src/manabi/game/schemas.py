"""Pydantic request models for the student game endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProfileUpdateRequest(BaseModel):
    nickname: str | None = Field(default=None, max_length=64)
    favorite_subject: str | None = Field(default=None, max_length=64)
    goal: str | None = Field(default=None, max_length=256)
    comment: str | None = Field(default=None, max_length=256)


class AvatarUpdateRequest(BaseModel):
    """Slot name to item id. An empty string unequips the slot."""

    slots: dict[str, str | None]
