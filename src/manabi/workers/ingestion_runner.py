"""One-shot ingestion pass for system cron.

Usage: python -m manabi.workers.ingestion_runner
"""

from __future__ import annotations

import asyncio
import json

from manabi.config import get_settings
from manabi.database import close_db, init_db, session_scope
from manabi.gamification.ingestion import run_ingestion
from manabi.middleware.logging import setup_logging


async def main() -> dict:
    """Run one ingestion pass and return its report."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    try:
        async with session_scope() as db:
            report = await run_ingestion(db)
        return report.as_dict()
    finally:
        await close_db()


if __name__ == "__main__":
    print(json.dumps(asyncio.run(main())))  # noqa: T201
