"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from manabi.classroom.router import router as classroom_router
from manabi.config import get_settings
from manabi.database import close_db, create_tables, init_db, session_scope
from manabi.game.router import router as game_router
from manabi.gamification.seed import seed_catalog
from manabi.health.router import router as health_router
from manabi.middleware import setup_middleware
from manabi.records.router import router as records_router
from manabi.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    if settings.auto_create_tables:
        await create_tables()

    # Catalog seeding is idempotent
    try:
        async with session_scope() as db:
            await seed_catalog(db)
    except SQLAlchemyError:
        logger.warning("Catalog seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Manabi Quest API",
        description="Gamification backend for an elementary-school learning app",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(game_router)
    app.include_router(records_router)
    app.include_router(classroom_router)

    return app


app = create_app()
