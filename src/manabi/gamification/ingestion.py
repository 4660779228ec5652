"""Batch ingestion of learning records into experience.

One pass walks every source type in declared order:

1. Read unprocessed rows and compute every delta for the type. If a read or
   any row fails, the whole type is logged and skipped; no row of it is touched.
2. Claim the rows with a conditional UPDATE, so a row another pass already
   flipped is never credited twice, then append ``exp_gain`` events and
   completion markers and add the delta to an in-memory per-user total.
3. After all types, take the user locks in id order, increment each user's
   balances once in SQL (with level-up events) and commit flags, events and
   balances together.

A crash before the commit leaves every row unprocessed, so the next pass
re-reads it and nothing is credited twice.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.db.models import (
    ArithmeticDrill,
    ClassReflection,
    GrowthLog,
    MoralNote,
    ReadingLog,
    SelfStudy,
    TestReflection,
    TypingPractice,
    User,
)
from manabi.gamification import formulas
from manabi.gamification.event_log import (
    CompletionPayload,
    EventKind,
    ExpGainPayload,
    append_event,
)
from manabi.gamification.game_config import GameConfig, load_game_config
from manabi.gamification.locks import user_lock
from manabi.gamification.xp_service import add_experience

logger = logging.getLogger(__name__)

_ingestion_lock = asyncio.Lock()


@dataclass(frozen=True)
class SourceType:
    """A learning-record table and the formula that turns a row into experience."""

    name: str
    model: type
    compute: Callable[[Any, GameConfig], int]
    completion_kind: EventKind | None = None


SOURCE_TYPES: tuple[SourceType, ...] = (
    SourceType(
        "class_reflection",
        ClassReflection,
        lambda row, cfg: formulas.flat_exp(cfg, "exp_class_reflection"),
    ),
    SourceType(
        "test_reflection",
        TestReflection,
        lambda row, cfg: formulas.scored_reflection_exp(
            row.score1, row.score2, cfg.get_decimal("test_reflection_coef")
        ),
    ),
    SourceType(
        "moral_note",
        MoralNote,
        lambda row, cfg: formulas.flat_exp(cfg, "exp_moral_note"),
    ),
    SourceType(
        "typing_practice",
        TypingPractice,
        lambda row, cfg: formulas.typing_exp(row.speed, row.accuracy, cfg.get_decimal("typing_coef")),
        EventKind.TYPING_COMPLETE,
    ),
    SourceType(
        "arithmetic_drill",
        ArithmeticDrill,
        lambda row, cfg: formulas.arithmetic_exp(
            row.score, row.time_seconds, cfg.get_decimal("arithmetic_time_divisor")
        ),
        EventKind.ARITHMETIC_COMPLETE,
    ),
    SourceType(
        "reading_log",
        ReadingLog,
        lambda row, cfg: formulas.reading_exp(row.pages, cfg.get_decimal("reading_coef")),
    ),
    SourceType(
        "self_study",
        SelfStudy,
        lambda row, cfg: formulas.flat_exp(cfg, "exp_self_study"),
    ),
    SourceType(
        "growth_log",
        GrowthLog,
        lambda row, cfg: formulas.flat_exp(cfg, "exp_growth_log"),
    ),
)

SOURCE_TYPE_MAP: dict[str, SourceType] = {s.name: s for s in SOURCE_TYPES}


@dataclass
class IngestionReport:
    processed: dict[str, int] = field(default_factory=dict)
    deferred: int = 0
    failed_types: list[str] = field(default_factory=list)
    credited_users: int = 0
    total_exp: int = 0
    level_ups: int = 0

    def as_dict(self) -> dict:
        return {
            "processed": dict(self.processed),
            "deferred": self.deferred,
            "failed_types": list(self.failed_types),
            "credited_users": self.credited_users,
            "total_exp": self.total_exp,
            "level_ups": self.level_ups,
        }


async def run_ingestion(
    db: AsyncSession,
    now: datetime | None = None,
    source_types: tuple[SourceType, ...] = SOURCE_TYPES,
) -> IngestionReport:
    """Run one ingestion pass. Concurrent calls in this process queue up."""
    async with _ingestion_lock:
        try:
            report = await _ingest(db, now or datetime.now(timezone.utc), source_types)
        except Exception:
            await db.rollback()
            raise
    logger.info(
        "Ingestion complete: processed=%s deferred=%d failed=%s users=%d exp=%d level_ups=%d",
        report.processed,
        report.deferred,
        report.failed_types,
        report.credited_users,
        report.total_exp,
        report.level_ups,
    )
    return report


@asynccontextmanager
async def _type_scope(db: AsyncSession) -> AsyncIterator[None]:
    """Roll back one source type's statements on failure, keeping the rest of the pass."""
    if db.get_bind().dialect.name == "sqlite":
        # A failed statement leaves the SQLite transaction usable, and the
        # driver would commit on releasing an outermost SAVEPOINT.
        yield
        return
    async with db.begin_nested():
        yield


async def _claim(db: AsyncSession, model: type, ids: list[int]) -> set[int]:
    """Flip ``processed`` on rows still unclaimed and return the ids this pass won."""
    if not ids:
        return set()
    result = await db.execute(
        update(model)
        .where(model.id.in_(ids), model.processed.is_(False))
        .values(processed=True)
        .returning(model.id)
    )
    return set(result.scalars())


async def _stage_source(
    db: AsyncSession,
    source: SourceType,
    owners: dict[str, int],
    config: GameConfig,
    now: datetime,
    report: IngestionReport,
) -> dict[int, int]:
    """Read, compute and claim one source type. Returns per-user experience."""
    rows = (
        await db.execute(
            select(source.model)
            .where(source.model.processed.is_(False))
            .order_by(source.model.id)
        )
    ).scalars().all()
    deltas = [(row, source.compute(row, config)) for row in rows]

    owned = [(row, owners.get((row.email or "").strip().lower()), delta) for row, delta in deltas]
    claimed = await _claim(db, source.model, [row.id for row, user_id, _ in owned if user_id is not None])

    staged: dict[int, int] = defaultdict(int)
    count = deferred = 0
    for row, user_id, delta in owned:
        if user_id is None:
            deferred += 1
            continue
        # Claimed by a concurrent pass
        if row.id not in claimed:
            continue

        count += 1
        if delta > 0:
            staged[user_id] += delta
            append_event(
                db,
                user_id,
                EventKind.EXP_GAIN,
                ExpGainPayload(amount=delta, source=source.name, record_id=row.id),
                now,
            )
        if source.completion_kind is not None:
            append_event(
                db,
                user_id,
                source.completion_kind,
                CompletionPayload(source=source.name, record_id=row.id),
                now,
            )
    await db.flush()

    report.processed[source.name] = count
    report.deferred += deferred
    return staged


async def _ingest(
    db: AsyncSession,
    now: datetime,
    source_types: tuple[SourceType, ...],
) -> IngestionReport:
    report = IngestionReport()
    config = await load_game_config(db)

    result = await db.execute(select(User.id, User.email))
    owners = {email.strip().lower(): user_id for user_id, email in result}
    pending: dict[int, int] = defaultdict(int)

    for source in source_types:
        try:
            async with _type_scope(db):
                staged = await _stage_source(db, source, owners, config, now, report)
        except Exception:
            logger.exception("Skipping source type %s: ingestion failed", source.name)
            report.failed_types.append(source.name)
            continue
        for user_id, delta in staged.items():
            pending[user_id] += delta

    async with AsyncExitStack() as stack:
        for user_id in sorted(pending):
            await stack.enter_async_context(user_lock(user_id))
        for user_id in sorted(pending):
            delta = pending[user_id]
            if await add_experience(db, user_id, delta, config, now) is not None:
                report.level_ups += 1
            report.credited_users += 1
            report.total_exp += delta
        await db.commit()
    return report
