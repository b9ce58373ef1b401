"""
Verity — Profile presence (last-active heartbeat, boosts, premium checks).

Premium entitlement is owned by billing; ``Profile.premium_until`` is a
read cache that billing's webhook keeps current, so every check here is a
plain timestamp comparison.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Callable

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from verity.config import get_settings
from verity.database import utcnow
from verity.models.profile import Profile
from verity.services.errors import ForbiddenError, NotFoundError

logger = structlog.get_logger("verity.profile_service")


class ProfileService:
    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._boost_duration = timedelta(minutes=get_settings().BOOST_DURATION_MINUTES)

    async def get_profile(self, db: AsyncSession, user_id: uuid.UUID) -> Profile:
        profile = await db.get(Profile, user_id)
        if profile is None:
            raise NotFoundError("Profile not found", user_id=str(user_id))
        return profile

    async def is_premium(self, db: AsyncSession, user_id: uuid.UUID) -> bool:
        profile = await self.get_profile(db, user_id)
        return profile.is_premium(self._clock())

    async def touch_last_active(self, db: AsyncSession, user_id: uuid.UUID) -> datetime:
        """Heartbeat from an open client; feeds the "active recently" filter."""
        now = self._clock()
        result = await db.execute(
            update(Profile)
            .where(Profile.user_id == user_id)
            .values(last_active=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("Profile not found", user_id=str(user_id))
        return now

    async def boost(self, db: AsyncSession, user_id: uuid.UUID) -> Profile:
        """Put the profile at the front of nearby feeds for a while.

        Boosting while a boost is running extends from the current expiry
        rather than from now.
        """
        profile = await self.get_profile(db, user_id)
        now = self._clock()
        if not profile.is_premium(now):
            raise ForbiddenError("Boosts require premium", user_id=str(user_id))

        start = profile.boost_expires_at if profile.is_boosted(now) else now
        profile.boost_expires_at = start + self._boost_duration
        profile.boost_count = (profile.boost_count or 0) + 1
        await db.flush()

        logger.info(
            "profile_boosted",
            user_id=str(user_id),
            boost_expires_at=profile.boost_expires_at.isoformat(),
            boost_count=profile.boost_count,
        )
        return profile
