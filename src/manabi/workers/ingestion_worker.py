"""Ingestion arq worker: runs the batch ingestion pass on a cron schedule.

Start with: arq manabi.workers.ingestion_worker.IngestionWorkerSettings
Run a single worker; the ingestion lock only serializes passes inside one process.
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings
from manabi.config import get_settings
from manabi.database import close_db, init_db, session_scope
from manabi.gamification.ingestion import run_ingestion

logger = logging.getLogger(__name__)


async def ingestion_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    settings = get_settings()
    await init_db(settings.database_url)
    logger.info("Ingestion worker started")


async def ingestion_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()
    logger.info("Ingestion worker shut down")


async def run_ingestion_job(ctx: dict) -> dict:  # type: ignore[type-arg]
    """Scheduled task: convert newly submitted learning records into experience."""
    async with session_scope() as db:
        report = await run_ingestion(db)
    return report.as_dict()


class IngestionWorkerSettings:
    """arq worker settings for scheduled ingestion."""

    functions = [run_ingestion_job]
    cron_jobs = [
        cron(run_ingestion_job, minute=set(get_settings().ingestion_cron_minutes), run_at_startup=False),
    ]
    on_startup = ingestion_startup
    on_shutdown = ingestion_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 1
    job_timeout = 600
