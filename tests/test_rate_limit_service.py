"""Unit tests for the sliding-window rate limiters."""
import json

import pytest

from verity.services.errors import RateLimitedError, ValidationError
from verity.services.rate_limit_service import (
    ClientRateLimitMirror,
    RedisRateLimiter,
    SlidingWindowCounter,
)


class _Clock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def tick():
    return _Clock()


@pytest.fixture
def limiter(fake_redis, tick):
    return RedisRateLimiter(fake_redis, limit=5, window_seconds=60, clock=tick)


class TestSlidingWindowCounter:
    """Tests for the pure sliding-log evaluation."""

    def test_allows_up_to_limit(self):
        counter = SlidingWindowCounter(limit=5, window_seconds=60)
        stamps: list[float] = []
        for i in range(5):
            decision, stamps = counter.evaluate(stamps, 100.0 + i)
            assert decision.allowed
        assert decision.remaining == 0

        decision, stamps = counter.evaluate(stamps, 105.0)
        assert not decision.allowed
        assert len(stamps) == 5

    def test_retry_after_counts_from_oldest(self):
        counter = SlidingWindowCounter(limit=2, window_seconds=60)
        decision, stamps = counter.evaluate([], 100.0)
        decision, stamps = counter.evaluate(stamps, 130.0)
        decision, _ = counter.evaluate(stamps, 140.0)
        assert not decision.allowed
        # Oldest (100) leaves the window at 160.
        assert decision.retry_after_seconds == 20

    def test_capacity_returns_one_slot_at_a_time(self):
        """Each expired timestamp frees exactly one slot."""
        counter = SlidingWindowCounter(limit=3, window_seconds=60)
        stamps = [0.0, 20.0, 40.0]
        assert counter.remaining(stamps, 59.0) == 0
        assert counter.remaining(stamps, 61.0) == 1
        assert counter.remaining(stamps, 81.0) == 2
        assert counter.remaining(stamps, 101.0) == 3


class TestRedisRateLimiter:
    """Tests for the authoritative Redis limiter."""

    @pytest.mark.asyncio
    async def test_sixth_interest_within_window_is_denied(self, limiter, tick):
        for _ in range(5):
            decision = await limiter.check("user-1", "interest")
            assert decision.allowed
            tick.now += 1

        decision = await limiter.check("user-1", "interest")
        assert not decision.allowed
        assert decision.remaining == 0
        assert decision.retry_after_seconds == 55

    @pytest.mark.asyncio
    async def test_denied_attempt_does_not_consume_capacity(self, limiter, fake_redis, tick):
        for _ in range(5):
            await limiter.check("user-1", "interest")
        await limiter.check("user-1", "interest")
        await limiter.check("user-1", "interest")
        assert len(fake_redis.zsets["ratelimit:interest:user-1"]) == 5

    @pytest.mark.asyncio
    async def test_slot_restored_after_oldest_expires(self, limiter, tick):
        start = tick.now
        for _ in range(5):
            await limiter.check("user-1", "interest")
            tick.now += 10

        tick.now = start + 61
        decision = await limiter.check("user-1", "interest")
        assert decision.allowed
        assert decision.remaining == 0

        decision = await limiter.check("user-1", "interest")
        assert not decision.allowed

    @pytest.mark.asyncio
    async def test_actions_and_users_are_independent(self, limiter):
        for _ in range(5):
            await limiter.check("user-1", "interest")
        assert (await limiter.check("user-1", "message")).allowed
        assert (await limiter.check("user-2", "interest")).allowed

    @pytest.mark.asyncio
    async def test_fails_open_when_redis_down(self, limiter, fake_redis):
        fake_redis.fail = True
        for _ in range(10):
            assert (await limiter.check("user-1", "interest")).allowed

    @pytest.mark.asyncio
    async def test_fails_open_without_client(self, tick):
        limiter = RedisRateLimiter(None, limit=1, window_seconds=60, clock=tick)
        assert (await limiter.check("user-1", "interest")).allowed
        assert (await limiter.check("user-1", "interest")).allowed

    @pytest.mark.asyncio
    async def test_enforce_raises_with_friendly_message(self, limiter):
        for _ in range(5):
            await limiter.enforce("user-1", "interest")
        with pytest.raises(RateLimitedError) as exc:
            await limiter.enforce("user-1", "interest")
        assert exc.value.message == "You're liking too fast! Please wait a minute."
        assert exc.value.retry_after_seconds >= 1

    @pytest.mark.asyncio
    async def test_unknown_action_rejected(self, limiter):
        with pytest.raises(ValidationError):
            await limiter.check("user-1", "superlike")


class TestClientRateLimitMirror:
    """Tests for the advisory client-side mirror."""

    def test_mirrors_limit(self, tick):
        storage: dict[str, str] = {}
        mirror = ClientRateLimitMirror(storage, limit=2, window_seconds=60, clock=tick)
        assert mirror.check("message").allowed
        assert mirror.check("message").allowed
        assert not mirror.check("message").allowed
        assert len(json.loads(storage["rate_limit_message"])) == 2

    def test_corrupt_storage_fails_open(self, tick):
        storage = {"rate_limit_interest": "{not json"}
        mirror = ClientRateLimitMirror(storage, limit=1, window_seconds=60, clock=tick)
        assert mirror.check("interest").allowed
        assert mirror.remaining("interest") == 1

    def test_non_list_entry_fails_open(self, tick):
        storage = {"rate_limit_interest": json.dumps({"count": 99})}
        mirror = ClientRateLimitMirror(storage, limit=1, window_seconds=60, clock=tick)
        assert mirror.check("interest").allowed
