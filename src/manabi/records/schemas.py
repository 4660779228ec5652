"""Submission bodies, one per learning-record type."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ClassReflectionIn(BaseModel):
    subject: str = Field(min_length=1, max_length=64)
    content: str = Field(min_length=1, max_length=4000)


class TestReflectionIn(BaseModel):
    subject: str = Field(min_length=1, max_length=64)
    score1: int | None = Field(default=None, ge=0, le=100)
    score2: int | None = Field(default=None, ge=0, le=100)


class MoralNoteIn(BaseModel):
    content: str = Field(min_length=1, max_length=4000)


class TypingPracticeIn(BaseModel):
    speed: float = Field(ge=0, le=2000)
    accuracy: float = Field(ge=0, le=100)


class ArithmeticDrillIn(BaseModel):
    score: int = Field(ge=0, le=1000)
    time_seconds: float = Field(ge=0, le=86400)


class ReadingLogIn(BaseModel):
    book_title: str = Field(min_length=1, max_length=256)
    pages: int = Field(ge=0, le=10000)


class SelfStudyIn(BaseModel):
    subject: str = Field(min_length=1, max_length=64)
    minutes: int = Field(ge=0, le=1440)


class GrowthLogIn(BaseModel):
    content: str = Field(min_length=1, max_length=4000)


SUBMISSION_SCHEMAS: dict[str, type[BaseModel]] = {
    "class_reflection": ClassReflectionIn,
    "test_reflection": TestReflectionIn,
    "moral_note": MoralNoteIn,
    "typing_practice": TypingPracticeIn,
    "arithmetic_drill": ArithmeticDrillIn,
    "reading_log": ReadingLogIn,
    "self_study": SelfStudyIn,
    "growth_log": GrowthLogIn,
}
