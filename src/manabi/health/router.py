"""Liveness, readiness and version endpoints."""

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.config import get_settings
from manabi.database import get_session
from manabi.db.models import Item
from manabi.gamification.ingestion import SOURCE_TYPES
from manabi.redis_client import get_redis

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


async def _ingestion_backlog(db: AsyncSession) -> int:
    """Learning records still waiting for an ingestion pass."""
    total = 0
    for source in SOURCE_TYPES:
        result = await db.execute(
            select(func.count()).select_from(source.model).where(source.model.processed.is_(False))
        )
        total += result.scalar() or 0
    return total


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Database, seeded catalog and Redis. Redis only backs rate limiting and the scheduler."""
    checks: dict[str, str] = {}
    backlog: int | None = None

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
        items = (await db.execute(select(func.count()).select_from(Item))).scalar() or 0
        checks["catalog"] = "ok" if items else "error: no items seeded"
        backlog = await _ingestion_backlog(db)
    except SQLAlchemyError as exc:
        checks["database"] = f"error: {exc}"

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except (RuntimeError, RedisError, OSError) as exc:
        checks["redis"] = f"error: {exc}"

    all_ok = all(v == "ok" for v in checks.values())
    return {
        "status": "ready" if all_ok else "degraded",
        "checks": checks,
        "ingestion_backlog": backlog,
    }


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {"version": settings.app_version, "environment": settings.environment}
