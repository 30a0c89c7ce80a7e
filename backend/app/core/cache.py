"""
Redis cache layer — async Redis client with typed helpers.

Provides:
    • Lazy shared client (also used by the Redis rate-limit store)
    • JSON serialisation cache helpers
    • TTL-aware get/set

Every helper degrades to a cache miss when Redis is unreachable, so the
service keeps working without it.

Usage:
    from backend.app.core.cache import cache_get, cache_set

    await cache_set("weather:current", data, ttl=600)
    cached = await cache_get("weather:current")
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[aioredis.Redis] = None


def get_redis() -> aioredis.Redis:
    """Get or create the shared async Redis client (connects on first command)."""
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Redis client created for %s", settings.REDIS_URL.split("@")[-1])
    return _redis_client


async def cache_get(key: str) -> Optional[Any]:
    """Get a cached value by key. Returns None on miss or error."""
    try:
        raw = await get_redis().get(key)
        if raw is not None:
            return json.loads(raw)
    except Exception as e:
        logger.warning("Cache GET error for %s: %s", key, e)
    return None


async def cache_set(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    """Set a cached value with optional TTL (seconds)."""
    try:
        serialised = json.dumps(value, default=str)
        await get_redis().set(key, serialised, ex=ttl or settings.REDIS_CACHE_TTL)
        return True
    except Exception as e:
        logger.warning("Cache SET error for %s: %s", key, e)
        return False


async def ping_redis() -> None:
    """Raises when Redis is unreachable."""
    await get_redis().ping()


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
