"""
Verity — Messaging

Persistent chat between the two members of a match.  Messaging is the
consumer of the unlock flag: nothing can be sent until the pair has had a
mutual-yes Verity-Date, and a block in either direction silences the
conversation immediately.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from verity.database import utcnow
from verity.models.message import Message
from verity.services.block_lookup import is_blocked
from verity.services.date_service import load_match_for_participant
from verity.services.errors import BlockedPairError, ChatLockedError, ValidationError
from verity.services.event_bus import match_channel

logger = structlog.get_logger("verity.message_service")

MAX_MESSAGE_LENGTH = 2000


class MessageService:
    def __init__(
        self,
        notifier: Any | None = None,
        event_bus: Any | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._notifier = notifier
        self._event_bus = event_bus
        self._clock = clock

    async def send_message(
        self,
        db: AsyncSession,
        match_id: uuid.UUID,
        sender_id: uuid.UUID,
        content: str,
    ) -> Message:
        body = (content or "").strip()
        if not body:
            raise ValidationError("Message cannot be empty")
        if len(body) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

        match = await load_match_for_participant(db, match_id, sender_id)
        if not match.chat_unlocked:
            raise ChatLockedError(
                "Chat unlocks after you both say yes on a Verity-Date",
                match_id=str(match_id),
            )
        recipient_id = match.partner_of(sender_id)
        if await is_blocked(db, sender_id, recipient_id):
            raise BlockedPairError("Cannot message a blocked user", match_id=str(match_id))

        message = Message(
            match_id=match.id,
            sender_id=sender_id,
            content=body,
            created_at=self._clock(),
        )
        db.add(message)
        await db.flush()

        logger.info("message_created", match_id=str(match_id), sender_id=str(sender_id))
        if self._notifier is not None:
            preview = body if len(body) <= 80 else body[:77] + "..."
            await self._notifier.notify(
                recipient_id, "message", "New message", preview, match.id
            )
        if self._event_bus is not None:
            await self._event_bus.publish(
                match_channel(match.id),
                "message_created",
                {
                    "id": message.id,
                    "sender_id": sender_id,
                    "content": body,
                    "created_at": message.created_at,
                },
            )
        return message

    async def list_messages(
        self,
        db: AsyncSession,
        match_id: uuid.UUID,
        caller_id: uuid.UUID,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Message]:
        """Messages in chronological order, newest page first when paging."""
        await load_match_for_participant(db, match_id, caller_id)
        stmt = select(Message).where(Message.match_id == match_id)
        if before is not None:
            stmt = stmt.where(Message.created_at < before)
        stmt = stmt.order_by(Message.created_at.desc()).limit(limit)
        rows = (await db.execute(stmt)).scalars().all()
        return list(reversed(rows))

    async def mark_read(
        self, db: AsyncSession, match_id: uuid.UUID, caller_id: uuid.UUID
    ) -> int:
        """Mark every message the partner sent as read; returns the count."""
        await load_match_for_participant(db, match_id, caller_id)
        result = await db.execute(
            update(Message)
            .where(
                Message.match_id == match_id,
                Message.sender_id != caller_id,
                Message.read_at.is_(None),
            )
            .values(read_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
