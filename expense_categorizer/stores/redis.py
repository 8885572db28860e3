"""Redis store for caching.

Handles:
- Generic get/set/delete with TTL
- JSON payload helpers
- The active pattern snapshot used by categorization

TTL policies:
- Active pattern snapshot: settings.pattern_cache_ttl (default 5 minutes),
  dropped explicitly whenever a pattern is created, edited or (de)activated
"""

import json
import logging
from typing import Any

import redis.asyncio as redis

from expense_categorizer.settings import get_settings

# Key prefixes
PREFIX_PATTERNS = "patterns:"

KEY_ACTIVE_PATTERNS = f"{PREFIX_PATTERNS}active:v1"

# Redis client (initialized on startup)
_redis: redis.Redis | None = None
logger = logging.getLogger("uvicorn.error")


async def init_redis() -> None:
    """Initialize Redis connection."""
    global _redis
    settings = get_settings()
    _redis = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    # Validate connectivity early (especially for `rediss://` in production).
    await _redis.ping()
    logger.info("Redis connected")


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def _get_redis() -> redis.Redis:
    """Get Redis client instance."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


# ============================================================
# Generic cache operations
# ============================================================


async def cache_get(key: str) -> str | None:
    """Get value from cache, None if not found."""
    return await _get_redis().get(key)


async def cache_set(key: str, value: str, ttl: int) -> None:
    """Set value in cache with TTL (seconds)."""
    await _get_redis().setex(key, ttl, value)


async def cache_delete(key: str) -> None:
    """Delete value from cache."""
    await _get_redis().delete(key)


async def cache_get_json(key: str) -> dict[str, Any] | None:
    """Get JSON value from cache.

    Args:
        key: Cache key.

    Returns:
        Parsed JSON dict or None if not found.
    """
    value = await cache_get(key)
    if value:
        return json.loads(value)
    return None


async def cache_set_json(key: str, value: dict[str, Any], ttl: int) -> None:
    """Set JSON value in cache.

    Args:
        key: Cache key.
        value: Dict to cache as JSON.
        ttl: Time-to-live in seconds.
    """
    await cache_set(key, json.dumps(value), ttl)


# ============================================================
# Active pattern snapshot
# ============================================================


async def get_active_patterns_cache() -> dict[str, Any] | None:
    """Get the cached active pattern snapshot payload."""
    return await cache_get_json(KEY_ACTIVE_PATTERNS)


async def set_active_patterns_cache(payload: dict[str, Any], ttl: int) -> None:
    """Cache the active pattern snapshot payload."""
    await cache_set_json(KEY_ACTIVE_PATTERNS, payload, ttl)


async def delete_active_patterns_cache() -> None:
    """Drop the active pattern snapshot."""
    await cache_delete(KEY_ACTIVE_PATTERNS)
