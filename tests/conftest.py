"""Shared test fixtures."""

from __future__ import annotations

import os

# Settings are cached on first use, so the environment must be ready before
# anything from manabi is imported.
os.environ["MANABI_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MANABI_TIMEZONE"] = "UTC"
os.environ["MANABI_IDP_JWT_SECRET"] = "test-secret-for-identity-tokens-32b"
os.environ["MANABI_IDP_JWT_ALGORITHM"] = "HS256"
os.environ["MANABI_IDP_PUBLIC_KEY_PATH"] = ""
os.environ["MANABI_IDP_ISSUER"] = ""
os.environ["MANABI_IDP_AUDIENCE"] = ""
os.environ["MANABI_TEACHER_EMAILS"] = '["teacher@school.example"]'
os.environ["MANABI_LOG_FORMAT"] = "console"

from collections.abc import AsyncGenerator, Callable  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from manabi.config import get_settings  # noqa: E402

get_settings.cache_clear()

from manabi.database import close_db, create_tables, init_db, session_scope  # noqa: E402
from manabi.db.models import User  # noqa: E402
from manabi.gamification.seed import seed_catalog  # noqa: E402
from manabi.gamification.xp_service import get_or_create_user  # noqa: E402
from manabi.main import create_app  # noqa: E402

TEACHER_EMAIL = "teacher@school.example"
STUDENT_EMAIL = "hana@school.example"


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database with all tables, one session."""
    settings = get_settings()
    await init_db(settings.database_url)
    await create_tables()
    async with session_scope() as session:
        yield session
    await close_db()


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Database with the default items, missions, badges and settings."""
    await seed_catalog(db_session)
    return db_session


@pytest_asyncio.fixture
async def student(seeded_db: AsyncSession) -> User:
    user = await get_or_create_user(seeded_db, STUDENT_EMAIL, nickname="Hana")
    await seeded_db.commit()
    return user


@pytest_asyncio.fixture
async def teacher(seeded_db: AsyncSession) -> User:
    user = await get_or_create_user(seeded_db, TEACHER_EMAIL, nickname="Sensei")
    await seeded_db.commit()
    return user


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Build identity-provider tokens signed with the test secret."""

    def _make(email: str, **claims: object) -> str:
        now = datetime.now(timezone.utc)
        payload: dict[str, object] = {
            "sub": email,
            "email": email,
            "email_verified": True,
            "iat": now,
            "exp": now + timedelta(minutes=5),
        }
        payload.update(claims)
        return jwt.encode(payload, get_settings().idp_jwt_secret, algorithm="HS256")

    return _make


@pytest_asyncio.fixture
async def client(seeded_db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, sharing the seeded in-memory database."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def student_client(client: AsyncClient, make_token: Callable[..., str]) -> AsyncClient:
    client.headers["Authorization"] = f"Bearer {make_token(STUDENT_EMAIL, name='Hana')}"
    return client


@pytest_asyncio.fixture
async def teacher_client(seeded_db: AsyncSession, make_token: Callable[..., str]) -> AsyncGenerator[AsyncClient, None]:
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.headers["Authorization"] = f"Bearer {make_token(TEACHER_EMAIL, name='Sensei')}"
        yield ac
