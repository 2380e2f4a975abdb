"""
Redis client for the live-estimate cache.

Live reports are cached per user under ``live:{user_id}`` for a few seconds
so that dashboards polling every second do not fan out a telemetry query per
mapping each time. Every cache operation is best-effort: connection failures
are logged and never propagate.

CHANGELOG:
- 2026-03-07: Cache live reports per user (STORY-011)
"""

import logging

import redis.asyncio as redis

from pvbilling.config import get_settings
from pvbilling.models import LiveReport

logger = logging.getLogger(__name__)

LIVE_KEY_PREFIX = "live:"


def live_cache_key(user_id: str) -> str:
    """Return the cache key of a user's live report."""
    return f"{LIVE_KEY_PREFIX}{user_id}"


async def get_redis() -> redis.Redis:
    """Create an async Redis client from ``REDIS_URL``.

    Returns:
        redis.Redis: Async Redis client.
    """
    return redis.from_url(get_settings().redis_url)


async def read_live_report(user_id: str) -> LiveReport | None:
    """Return the cached live report of a user, or None on miss or failure."""
    key = live_cache_key(user_id)
    try:
        client = await get_redis()
        try:
            cached = await client.get(key)
        finally:
            await client.aclose()
        if cached is not None:
            return LiveReport.model_validate_json(cached)
    except Exception:
        logger.warning("Redis read failed for key %s", key, exc_info=True)
    return None


async def write_live_report(user_id: str, report: LiveReport, ttl_s: int) -> None:
    """Cache a live report for ``ttl_s`` seconds (0 disables caching)."""
    if ttl_s <= 0:
        return
    key = live_cache_key(user_id)
    try:
        client = await get_redis()
        try:
            await client.set(key, report.model_dump_json(), ex=ttl_s)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis write failed for key %s", key, exc_info=True)


async def invalidate_live_cache() -> None:
    """Delete every cached live report.

    Called after the system settings change, since sensors, sign conventions
    and prices feed into every user's live figures.
    """
    try:
        client = await get_redis()
        try:
            keys = [key async for key in client.scan_iter(match=f"{LIVE_KEY_PREFIX}*")]
            if keys:
                await client.delete(*keys)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Failed to invalidate live cache", exc_info=True)
