"""Learning-record submission.

Rows are stored unprocessed; the next ingestion pass turns them into
experience.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from manabi.auth.dependencies import get_current_user
from manabi.database import get_session
from manabi.db.models import User
from manabi.errors import NotFoundError
from manabi.gamification.ingestion import SOURCE_TYPE_MAP
from manabi.records.schemas import SUBMISSION_SCHEMAS

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/records", tags=["Records"])


@router.post("/{source_type}", status_code=201)
async def submit_record(
    source_type: str,
    body: dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Store one learning record for the signed-in student."""
    schema = SUBMISSION_SCHEMAS.get(source_type)
    source = SOURCE_TYPE_MAP.get(source_type)
    if schema is None or source is None:
        raise NotFoundError(f"Unknown record type: {source_type}")

    try:
        data = schema.model_validate(body)
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e

    row = source.model(
        email=user.email,
        submitted_at=datetime.now(timezone.utc),
        processed=False,
        **data.model_dump(),
    )
    db.add(row)
    await db.commit()
    logger.info("record_submitted", source_type=source_type, record_id=row.id, user_id=user.id)
    return {"success": True, "source_type": source_type, "record_id": row.id}
