"""
Redis caching for the service catalog.

CACHING STRATEGY
================

What we cache:
  - The active service catalog (JSON-serialized list), key "services:active"

Why only this:
  - Services are reference data that changes rarely and is read on every
    booking form load
  - Booking state is never cached; every transition re-reads its row under
    a lock

Invalidation:
  - Explicit invalidate_service_cache() when the catalog changes
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

Redis is advisory. Any Redis failure degrades to a database read.
"""

import json
from typing import Optional

import redis.asyncio as redis
from pestbook.core.config import get_settings
from pestbook.core.logging import get_logger
from pestbook.core.metrics import record_cache_operation, redis_connection_errors

logger = get_logger(__name__)
settings = get_settings()

SERVICE_CATALOG_KEY = "services:active"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled or down."""
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
        except Exception as e:
            redis_connection_errors.inc()
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


async def get_cached_services() -> Optional[list[dict]]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(SERVICE_CATALOG_KEY)
        record_cache_operation("get", hit=bool(data))
        if data:
            return json.loads(data)
    except Exception as e:
        logger.error("cache_get_error", key=SERVICE_CATALOG_KEY, error=str(e))

    return None


async def set_cached_services(services: list[dict]) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.set(SERVICE_CATALOG_KEY, json.dumps(services, default=str), ex=settings.REDIS_CACHE_TTL)
        record_cache_operation("set", hit=True)
    except Exception as e:
        logger.error("cache_set_error", key=SERVICE_CATALOG_KEY, error=str(e))


async def invalidate_service_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.delete(SERVICE_CATALOG_KEY)
        logger.info("cache_invalidated", key=SERVICE_CATALOG_KEY)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


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
    except Exception as e:
        return {"status": "error", "error": str(e)}
