"""ORM models for users, learning records, the event log and the game catalogs.

Every learning-record table carries a ``processed`` flag: the batch ingestion
pass flips it exactly once when the row has been converted to experience.
Column types stay portable so the same models run on PostgreSQL and SQLite.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from manabi.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A student or teacher, keyed by the identity provider's verified email."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    nickname: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="student")
    cumulative_exp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    spendable_exp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    exchange_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_login_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    favorite_subject: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    goal: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    comment: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def is_teacher(self) -> bool:
        return self.role == "teacher"


# ---------------------------------------------------------------------------
# Learning records (one table per record type)
# ---------------------------------------------------------------------------


class SourceRecordMixin:
    """Columns shared by every learning-record table."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)


class ClassReflection(SourceRecordMixin, Base):
    __tablename__ = "class_reflections"

    subject: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")


class TestReflection(SourceRecordMixin, Base):
    __tablename__ = "test_reflections"
    __test__ = False  # not a pytest test class

    subject: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    score1: Mapped[int | None] = mapped_column(Integer, nullable=True)
    score2: Mapped[int | None] = mapped_column(Integer, nullable=True)


class MoralNote(SourceRecordMixin, Base):
    __tablename__ = "moral_notes"

    content: Mapped[str] = mapped_column(Text, nullable=False, default="")


class TypingPractice(SourceRecordMixin, Base):
    __tablename__ = "typing_practices"

    speed: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    accuracy: Mapped[float] = mapped_column(Float, nullable=False, default=0)


class ArithmeticDrill(SourceRecordMixin, Base):
    __tablename__ = "arithmetic_drills"

    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0)


class ReadingLog(SourceRecordMixin, Base):
    __tablename__ = "reading_logs"

    book_title: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    pages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SelfStudy(SourceRecordMixin, Base):
    __tablename__ = "self_studies"

    subject: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class GrowthLog(SourceRecordMixin, Base):
    __tablename__ = "growth_logs"

    content: Mapped[str] = mapped_column(Text, nullable=False, default="")


# ---------------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------------


class EventLog(Base):
    """Append-only user action log. ``payload`` is validated per ``kind``."""

    __tablename__ = "event_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )

    user: Mapped[User] = relationship("User", lazy="joined")


# ---------------------------------------------------------------------------
# Items, inventory, avatar
# ---------------------------------------------------------------------------


class Item(Base):
    """Catalog item. ``rarity`` is null for exchange-only items."""

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    rarity: Mapped[str | None] = mapped_column(String(4), nullable=True)
    cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    image: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class InventoryEntry(Base):
    """Owned item. UNIQUE(user_id, item_id): an item is owned at most once."""

    __tablename__ = "inventory"
    __table_args__ = (UniqueConstraint("user_id", "item_id", name="inventory_user_id_item_id_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(32), ForeignKey("items.id"), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class AvatarComposition(Base):
    """Equipped items per avatar slot, one row per user."""

    __tablename__ = "avatars"

    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), primary_key=True)
    slots: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Missions and badges
# ---------------------------------------------------------------------------


class MissionDefinition(Base):
    __tablename__ = "mission_definitions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    cadence: Mapped[str] = mapped_column(String(16), nullable=False)
    condition_key: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    target: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    reward_type: Mapped[str] = mapped_column(String(16), nullable=False, default="exp")
    reward_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class BadgeDefinition(Base):
    __tablename__ = "badge_definitions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    condition_key: Mapped[str] = mapped_column(String(32), nullable=False)
    condition_params: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    threshold: Mapped[float] = mapped_column(Float, nullable=False, default=1)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class EarnedBadge(Base):
    """Badges earned by users, UNIQUE(user_id, badge_id)."""

    __tablename__ = "earned_badges"
    __table_args__ = (UniqueConstraint("user_id", "badge_id", name="earned_badges_user_id_badge_id_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    badge_id: Mapped[str] = mapped_column(String(32), ForeignKey("badge_definitions.id"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Settings and announcements
# ---------------------------------------------------------------------------


class GameSetting(Base):
    """Flat key/value tuning constant (rates, costs, weights)."""

    __tablename__ = "game_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(String(64), nullable=False)


class Announcement(Base):
    __tablename__ = "announcements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    author_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
