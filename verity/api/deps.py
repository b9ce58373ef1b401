"""
Verity — Shared API dependencies.

Caller identity arrives from the authentication layer in front of this
service as the ``X-User-Id`` header.  Services are assembled per request
from process-wide collaborators (Redis, the room provider client) so tests
can override any of them through ``app.dependency_overrides``.
"""

from __future__ import annotations

import uuid

from fastapi import Depends, Header, HTTPException

from verity.config import get_settings
from verity.database import async_session_factory
from verity.redis_client import get_redis
from verity.services.date_service import DateService
from verity.services.event_bus import RedisEventBus
from verity.services.feed_service import FeedService
from verity.services.feedback_service import FeedbackService
from verity.services.interest_service import InterestService
from verity.services.message_service import MessageService
from verity.services.notification_service import NotificationService
from verity.services.profile_service import ProfileService
from verity.services.rate_limit_service import RedisRateLimiter
from verity.services.room_provisioner import DailyRoomProvisioner
from verity.services.safety_service import SafetyService


def get_caller_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> uuid.UUID:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    try:
        return uuid.UUID(x_user_id.strip())
    except ValueError:
        raise HTTPException(status_code=400, detail="X-User-Id must be a valid UUID")


# ── Process-wide collaborators ────────────────────────────────────────────────

_provisioner: DailyRoomProvisioner | None = None


def get_provisioner() -> DailyRoomProvisioner:
    global _provisioner
    if _provisioner is None:
        settings = get_settings()
        _provisioner = DailyRoomProvisioner(
            api_key=settings.DAILY_API_KEY,
            base_url=settings.DAILY_API_URL,
            session_seconds=settings.VERITY_DATE_DURATION_SECONDS,
            timeout_seconds=settings.ROOM_PROVISION_TIMEOUT_SECONDS,
        )
    return _provisioner


async def close_provisioner() -> None:
    global _provisioner
    if _provisioner is not None:
        await _provisioner.aclose()
        _provisioner = None


def get_event_bus() -> RedisEventBus:
    return RedisEventBus(get_redis())


def get_rate_limiter() -> RedisRateLimiter:
    return RedisRateLimiter(get_redis())


def get_notifier(event_bus=Depends(get_event_bus)) -> NotificationService:
    return NotificationService(async_session_factory, event_bus)


# ── Services ──────────────────────────────────────────────────────────────────

def get_date_service(
    provisioner=Depends(get_provisioner),
    notifier=Depends(get_notifier),
    event_bus=Depends(get_event_bus),
) -> DateService:
    return DateService(provisioner=provisioner, notifier=notifier, event_bus=event_bus)


def get_interest_service(
    date_service: DateService = Depends(get_date_service),
    notifier=Depends(get_notifier),
) -> InterestService:
    return InterestService(date_service=date_service, notifier=notifier)


def get_feedback_service(
    notifier=Depends(get_notifier),
    event_bus=Depends(get_event_bus),
) -> FeedbackService:
    return FeedbackService(notifier=notifier, event_bus=event_bus)


def get_safety_service(provisioner=Depends(get_provisioner)) -> SafetyService:
    return SafetyService(provisioner=provisioner)


def get_message_service(
    notifier=Depends(get_notifier),
    event_bus=Depends(get_event_bus),
) -> MessageService:
    return MessageService(notifier=notifier, event_bus=event_bus)


def get_feed_service() -> FeedService:
    return FeedService()


def get_profile_service() -> ProfileService:
    return ProfileService()
