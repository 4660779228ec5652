"""FastAPI authentication dependencies."""

from __future__ import annotations

import structlog
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.auth.identity import verify_identity_token
from manabi.database import get_session
from manabi.db.models import User
from manabi.errors import AuthenticationError, AuthorizationError
from manabi.gamification.xp_service import get_or_create_user

logger = structlog.get_logger()

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Verify the bearer token and return the matching User.

    First sight of a verified email creates the account.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()

    claims = verify_identity_token(credentials.credentials)
    user = await get_or_create_user(db, claims["email"], nickname=str(claims.get("name") or ""))
    await db.commit()
    structlog.contextvars.bind_contextvars(user_id=user.id)
    return user


async def require_teacher(user: User = Depends(get_current_user)) -> User:
    """Same as get_current_user, restricted to teachers."""
    if not user.is_teacher:
        logger.info("teacher_access_denied", user_id=user.id)
        raise AuthorizationError()
    return user
