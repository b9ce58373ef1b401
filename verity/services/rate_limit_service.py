"""
Verity — Rate Limiter

Bounds how often a user may perform sensitive actions (expressing interest,
sending a message) within a rolling window.

Two limiters share one sliding-log algorithm:

- ``RedisRateLimiter`` is authoritative.  Counters live in a Redis sorted set
  per ``(user, action)``; trimming, recording and counting happen in a single
  ``MULTI`` pipeline.  If Redis is unreachable the limiter fails **open** and
  logs the condition, so the limiter can never take the primary feature down
  with it.
- ``ClientRateLimitMirror`` is advisory.  It mirrors the counters in a
  client-held key/value store to short-circuit obviously over-limit calls
  before a round trip, and fails open when that store is unreadable or
  corrupted.

Each timestamp that slides out of the window restores exactly one slot, so
capacity returns proportionally to elapsed time rather than all at once.
"""

from __future__ import annotations

import asyncio
import json
import math
import time
import uuid
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Any, Callable

import structlog
from redis.exceptions import RedisError

from verity.config import get_settings
from verity.services.errors import RateLimitedError, ValidationError

logger = structlog.get_logger("verity.rate_limit")

RATE_LIMITED_ACTIONS = ("interest", "message")

_SLOW_DOWN_MESSAGES = {
    "interest": "You're liking too fast! Please wait a minute.",
    "message": "You're sending messages too fast! Please wait a minute.",
}


@dataclass
class RateDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: int = 0


def _validate_action(action: str) -> None:
    if action not in RATE_LIMITED_ACTIONS:
        raise ValidationError(f"Unknown rate-limited action: {action!r}")


class SlidingWindowCounter:
    """Pure sliding-log evaluation over a list of epoch-second timestamps."""

    def __init__(self, limit: int, window_seconds: int) -> None:
        self.limit = limit
        self.window_seconds = window_seconds

    def prune(self, timestamps: list[float], now: float) -> list[float]:
        cutoff = now - self.window_seconds
        return [ts for ts in timestamps if ts > cutoff]

    def evaluate(self, timestamps: list[float], now: float) -> tuple[RateDecision, list[float]]:
        """Return the decision and the timestamp log to persist."""
        recent = self.prune(timestamps, now)
        if len(recent) >= self.limit:
            oldest = min(recent)
            retry_after = max(1, math.ceil(oldest + self.window_seconds - now))
            return RateDecision(False, 0, retry_after), recent
        recent.append(now)
        return RateDecision(True, self.limit - len(recent)), recent

    def remaining(self, timestamps: list[float], now: float) -> int:
        return max(0, self.limit - len(self.prune(timestamps, now)))


class ClientRateLimitMirror:
    """Advisory client-side mirror of the authoritative counters.

    ``storage`` is any string key/value mapping (the client's local storage).
    """

    def __init__(
        self,
        storage: MutableMapping[str, str],
        limit: int | None = None,
        window_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = get_settings()
        self._storage = storage
        self._counter = SlidingWindowCounter(
            limit or settings.RATE_LIMIT_MAX_ACTIONS,
            window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS,
        )
        self._clock = clock

    @staticmethod
    def _key(action: str) -> str:
        return f"rate_limit_{action}"

    def _load(self, action: str) -> list[float]:
        raw = self._storage.get(self._key(action))
        if raw is None:
            return []
        stamps = json.loads(raw)
        if not isinstance(stamps, list):
            raise ValueError("rate limit mirror entry is not a list")
        return [float(ts) for ts in stamps]

    def check(self, action: str) -> RateDecision:
        """Record an attempt locally; fails open on unreadable storage."""
        _validate_action(action)
        now = self._clock()
        try:
            decision, stamps = self._counter.evaluate(self._load(action), now)
            if decision.allowed:
                self._storage[self._key(action)] = json.dumps(stamps)
            return decision
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("rate_limit_mirror_unreadable", action=action, error=str(exc))
            return RateDecision(True, self._counter.limit)

    def remaining(self, action: str) -> int:
        _validate_action(action)
        try:
            return self._counter.remaining(self._load(action), self._clock())
        except (OSError, ValueError, TypeError):
            return self._counter.limit


class RedisRateLimiter:
    """Authoritative sliding-window limiter backed by Redis sorted sets."""

    def __init__(
        self,
        redis: Any,
        limit: int | None = None,
        window_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = get_settings()
        self._redis = redis
        self.limit = limit or settings.RATE_LIMIT_MAX_ACTIONS
        self.window_seconds = window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
        self._clock = clock

    @staticmethod
    def _key(user_id: str, action: str) -> str:
        return f"ratelimit:{action}:{user_id}"

    async def check(self, user_id: str, action: str) -> RateDecision:
        """Record an attempt for ``(user_id, action)`` and decide on it."""
        _validate_action(action)
        log = logger.bind(user_id=str(user_id), action=action)

        if self._redis is None:
            log.warning("rate_limit_backend_unavailable", reason="client_not_initialised")
            return RateDecision(True, self.limit)

        key = self._key(str(user_id), action)
        now = self._clock()
        member = f"{now:.6f}:{uuid.uuid4().hex}"

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, 0, now - self.window_seconds)
                pipe.zadd(key, {member: now})
                pipe.zcard(key)
                pipe.expire(key, self.window_seconds)
                _, _, count, _ = await pipe.execute()

            if count <= self.limit:
                return RateDecision(True, self.limit - count)

            # Rejected attempts must not consume capacity.
            await self._redis.zrem(key, member)
            oldest = await self._redis.zrange(key, 0, 0, withscores=True)
            oldest_ts = oldest[0][1] if oldest else now
            retry_after = max(1, math.ceil(oldest_ts + self.window_seconds - now))
            log.info("rate_limit_exceeded", retry_after=retry_after)
            return RateDecision(False, 0, retry_after)

        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            log.warning("rate_limit_backend_unavailable", error=str(exc))
            return RateDecision(True, self.limit)

    async def enforce(self, user_id: str, action: str) -> RateDecision:
        """Like ``check`` but raises ``RateLimitedError`` on denial."""
        decision = await self.check(user_id, action)
        if not decision.allowed:
            raise RateLimitedError(
                _SLOW_DOWN_MESSAGES[action],
                retry_after_seconds=decision.retry_after_seconds,
                action=action,
            )
        return decision
