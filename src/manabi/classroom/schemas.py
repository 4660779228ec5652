"""Pydantic request models for the teacher console."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class GrantRequest(BaseModel):
    user_ids: list[int] = Field(min_length=1)
    kind: Literal["exp", "points"]
    amount: int = Field(gt=0, le=100000)
    reason: str = Field(default="", max_length=256)


class AnnouncementRequest(BaseModel):
    title: str = Field(min_length=1, max_length=128)
    body: str = Field(default="", max_length=4000)


class SettingsUpdateRequest(BaseModel):
    settings: dict[str, str | int | float]
