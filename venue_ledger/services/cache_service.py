"""
Redis caching service for venue calendar listings.

CACHING STRATEGY
================

What we cache:
  - Venue calendar responses (the bookings of one venue in a window)
  - Cache key pattern: "calendar:{venue_id}:start={start}&end={end}&inactive={flag}"

Invalidation strategy:
  - Any booking write on a venue deletes that venue's calendar keys
    (prefix "calendar:{venue_id}:"), found with SCAN
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

What we never cache:
  - Availability answers. The slot check must see every committed booking;
    a stale "free" would let a request reach the write path with a wrong
    expectation, and the write path re-checks anyway.
  - Payment and PO state, which the reconciler changes without touching the
    booking write path. Calendar entries (CalendarEntryResponse) leave out
    advance_amount, payment_status and version for that reason.

The cache fails open: if Redis is down or disabled every call is a miss and
every write is a no-op.
"""

import json
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from venue_ledger.core.config import get_settings
from venue_ledger.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except (RedisError, OSError) as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _venue_prefix(venue_id: int) -> str:
    return f"calendar:{venue_id}:"


def make_calendar_key(venue_id: int, start, end, include_inactive: bool) -> str:
    start_part = start.isoformat() if start else ""
    end_part = end.isoformat() if end else ""
    return f"{_venue_prefix(venue_id)}start={start_part}&end={end_part}&inactive={include_inactive}"


async def get_cached_calendar(key: str) -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_calendar(key: str, data: list) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_venue_calendar(venue_id: int) -> None:
    """Delete every cached calendar window of the venue."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{_venue_prefix(venue_id)}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", venue_id=venue_id, keys_deleted=deleted)
    except RedisError as e:
        logger.error("cache_invalidation_error", venue_id=venue_id, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except RedisError as e:
        return {"status": "error", "error": str(e)}
