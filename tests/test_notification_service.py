"""Tests for NotificationService and the Redis event bus."""
import json
import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from verity.models.notification import Notification
from verity.services.event_bus import RedisEventBus, match_channel, user_channel
from verity.services.notification_service import NotificationService


class TestNotificationService:
    """Tests for fire-and-forget notification delivery."""

    @pytest.mark.asyncio
    async def test_notification_is_stored_and_pushed(self, session_factory, event_bus):
        service = NotificationService(session_factory, event_bus)
        user_id, related = uuid.uuid4(), uuid.uuid4()

        ok = await service.notify(user_id, "match", "It's a match!", "Say hi", related)

        assert ok is True
        async with session_factory() as session:
            stored = (await session.execute(select(Notification))).scalar_one()
        assert stored.user_id == user_id
        assert stored.type == "match"
        assert stored.read is False

        channel, event, payload = event_bus.events[0]
        assert channel == user_channel(user_id)
        assert event == "notification"
        assert payload["related_id"] == related

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, event_bus):
        broken_factory = MagicMock(side_effect=RuntimeError("pool exhausted"))
        service = NotificationService(broken_factory, event_bus)

        ok = await service.notify(uuid.uuid4(), "like", "Someone likes you!", "...")

        assert ok is False
        assert event_bus.events == []


class TestRedisEventBus:
    """Tests for the pub/sub event channel."""

    @pytest.mark.asyncio
    async def test_publishes_json_envelope(self, fake_redis):
        bus = RedisEventBus(fake_redis)
        match_id = uuid.uuid4()

        assert await bus.publish(match_channel(match_id), "session_ended", {"verity_date_id": match_id})

        channel, raw = fake_redis.published[0]
        assert channel == f"match:{match_id}"
        envelope = json.loads(raw)
        assert envelope["event"] == "session_ended"
        assert envelope["payload"]["verity_date_id"] == str(match_id)
        assert "emitted_at" in envelope

    @pytest.mark.asyncio
    async def test_publish_failure_is_dropped(self, fake_redis):
        fake_redis.fail = True
        assert await RedisEventBus(fake_redis).publish("match:x", "noop") is False

    @pytest.mark.asyncio
    async def test_without_redis(self):
        assert await RedisEventBus(None).publish("match:x", "noop") is False
