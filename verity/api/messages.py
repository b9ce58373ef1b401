"""
Verity — Messages API

Chat between matched users.  Sending is rate limited and only allowed once
the match's chat is unlocked (409 ``chat_locked`` otherwise).
"""

from __future__ import annotations

import uuid
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from verity.api.deps import get_caller_id, get_message_service, get_rate_limiter
from verity.database import get_db
from verity.schemas.message import (
    MessageCreate,
    MessageListResponse,
    MessageOut,
    MessageResponse,
)
from verity.services.message_service import MessageService
from verity.services.rate_limit_service import RedisRateLimiter

logger = structlog.get_logger("verity.api.messages")

router = APIRouter()


@router.get("/{match_id}/messages", response_model=MessageListResponse)
async def list_messages(
    match_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=200),
    before: datetime | None = Query(None),
    mark_read: bool = Query(True),
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: MessageService = Depends(get_message_service),
) -> MessageListResponse:
    messages = await service.list_messages(db, match_id, caller_id, limit=limit, before=before)
    marked = await service.mark_read(db, match_id, caller_id) if mark_read else 0
    return MessageListResponse(
        status="ok",
        messages=[MessageOut.model_validate(m) for m in messages],
        marked_read=marked,
    )


@router.post(
    "/{match_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    match_id: uuid.UUID,
    body: MessageCreate,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: MessageService = Depends(get_message_service),
    limiter: RedisRateLimiter = Depends(get_rate_limiter),
) -> MessageResponse:
    decision = await limiter.enforce(caller_id, "message")
    message = await service.send_message(db, match_id, caller_id, body.content)
    return MessageResponse(
        status="sent",
        message=MessageOut.model_validate(message),
        remaining=decision.remaining,
    )
