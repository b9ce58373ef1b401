"""
Verity — Notification boundary.

``notify`` is fire-and-forget: the notification row is written in its own
session (so it can neither roll back nor be rolled back by the lifecycle
transaction that triggered it) and mirrored onto the user's realtime
channel.  Delivery failures are logged and swallowed.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from verity.models.notification import Notification
from verity.services.event_bus import user_channel

logger = structlog.get_logger("verity.notifications")


class NotificationService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        event_bus: Any | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._event_bus = event_bus

    async def notify(
        self,
        user_id: uuid.UUID,
        kind: str,
        title: str,
        message: str,
        related_id: uuid.UUID | None = None,
    ) -> bool:
        """Record and push a notification.  Never raises."""
        log = logger.bind(user_id=str(user_id), kind=kind, related_id=str(related_id))
        try:
            async with self._session_factory() as session:
                notification = Notification(
                    user_id=user_id,
                    type=kind,
                    title=title,
                    message=message,
                    related_id=related_id,
                )
                session.add(notification)
                await session.commit()
                notification_id = notification.id

            if self._event_bus is not None:
                await self._event_bus.publish(
                    user_channel(user_id),
                    "notification",
                    {
                        "id": notification_id,
                        "type": kind,
                        "title": title,
                        "message": message,
                        "related_id": related_id,
                    },
                )
        except Exception:
            log.exception("notification_delivery_failed")
            return False

        log.info("notification_sent")
        return True
