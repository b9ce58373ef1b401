"""Unit tests for ProfileService: heartbeat, premium and boosts."""
import uuid
from datetime import timedelta

import pytest

from verity.services.errors import ForbiddenError, NotFoundError
from verity.services.profile_service import ProfileService


@pytest.fixture
def profile_service(clock):
    return ProfileService(clock=clock)


class TestPresence:
    """Tests for the last-active heartbeat."""

    @pytest.mark.asyncio
    async def test_touch_last_active(self, db, make_profile, profile_service, clock):
        profile = await make_profile()
        stamped = await profile_service.touch_last_active(db, profile.user_id)
        await db.refresh(profile)
        assert stamped == clock.now
        assert profile.last_active == clock.now

    @pytest.mark.asyncio
    async def test_unknown_profile(self, db, profile_service):
        with pytest.raises(NotFoundError):
            await profile_service.touch_last_active(db, uuid.uuid4())


class TestBoost:
    """Tests for premium boosts."""

    @pytest.mark.asyncio
    async def test_boost_requires_premium(self, db, make_profile, profile_service):
        profile = await make_profile()
        assert await profile_service.is_premium(db, profile.user_id) is False
        with pytest.raises(ForbiddenError):
            await profile_service.boost(db, profile.user_id)

    @pytest.mark.asyncio
    async def test_boost_extends_running_boost(self, db, make_profile, profile_service, clock):
        profile = await make_profile(premium_until=clock.now + timedelta(days=30))

        await profile_service.boost(db, profile.user_id)
        assert profile.boost_expires_at == clock.now + timedelta(minutes=30)

        clock.advance(minutes=10)
        await profile_service.boost(db, profile.user_id)
        assert profile.boost_expires_at == clock.now + timedelta(minutes=50)
        assert profile.boost_count == 2

    @pytest.mark.asyncio
    async def test_expired_boost_restarts_from_now(self, db, make_profile, profile_service, clock):
        profile = await make_profile(
            premium_until=clock.now + timedelta(days=30),
            boost_expires_at=clock.now - timedelta(hours=1),
        )
        await profile_service.boost(db, profile.user_id)
        assert profile.boost_expires_at == clock.now + timedelta(minutes=30)
