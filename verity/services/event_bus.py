"""
Verity — Realtime domain-event channel.

The lifecycle emits domain events (``message_created``,
``feedback_submitted``, ``verity_date_accepted`` ...) onto channels keyed by
match id or user id.  How clients receive them (polling, push, a long-lived
connection) is outside the core; this module only publishes.  Publishing is
fire-and-forget: a failure is logged and never propagates into the state
transition that triggered it.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any

import structlog
from redis.exceptions import RedisError

from verity.database import utcnow

logger = structlog.get_logger("verity.event_bus")


def match_channel(match_id: uuid.UUID | str) -> str:
    return f"match:{match_id}"


def user_channel(user_id: uuid.UUID | str) -> str:
    return f"user:{user_id}"


def _default(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serialisable")


class RedisEventBus:
    """Publishes JSON envelopes over Redis pub/sub."""

    def __init__(self, redis: Any) -> None:
        self._redis = redis

    async def publish(self, channel: str, event: str, payload: dict[str, Any] | None = None) -> bool:
        """Publish ``event`` on ``channel``; returns False if it was dropped."""
        if self._redis is None:
            logger.debug("event_dropped", channel=channel, event_name=event, reason="no_redis")
            return False

        envelope = {
            "event": event,
            "payload": payload or {},
            "emitted_at": utcnow(),
        }
        try:
            await self._redis.publish(channel, json.dumps(envelope, default=_default))
        except (RedisError, OSError) as exc:
            logger.warning(
                "event_publish_failed",
                channel=channel,
                event_name=event,
                error=str(exc),
            )
            return False
        return True
