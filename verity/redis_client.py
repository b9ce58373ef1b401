"""
Verity — Shared Redis client.

One ``redis.asyncio`` client per process, opened by the application
lifespan and shared by the rate limiter and the event bus.  When Redis is
unreachable at startup the client stays ``None``; both consumers fail open.
"""

from __future__ import annotations

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from verity.config import get_settings

logger = structlog.get_logger("verity.redis")

_redis_client: aioredis.Redis | None = None


async def connect_redis() -> aioredis.Redis | None:
    global _redis_client

    settings = get_settings()
    client = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5,
    )
    try:
        # Verify connectivity
        await client.ping()
    except (RedisError, OSError) as exc:
        logger.warning("redis_unavailable", url=settings.REDIS_URL, error=str(exc))
        await client.aclose()
        return None

    _redis_client = client
    logger.info("redis_connected", url=settings.REDIS_URL)
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_closed")


def get_redis() -> aioredis.Redis | None:
    """Return the shared Redis client, or ``None`` if it is not connected."""
    return _redis_client
