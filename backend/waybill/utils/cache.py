"""Redis caching utilities for Waybill.

Caches read-mostly lookup queries (vehicles, carriers, routes, drivers).
Keys are always prefixed with the current tenant so one tenant can never
read another's cached rows.  Setting CACHE_ENABLED=false bypasses Redis
entirely (local development, tests).
"""

import functools
import hashlib
import json
import logging
from datetime import date, datetime
from typing import Callable, Optional

import redis.asyncio as redis

from waybill.config import settings
from waybill.tenancy import _tenant_ctx

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def cache_key(**kwargs) -> str:
    """Deterministic hash of the cacheable keyword arguments."""
    if not kwargs:
        return "default"
    key_data = json.dumps(kwargs, sort_keys=True)
    return hashlib.md5(key_data.encode()).hexdigest()


def build_key(prefix: str, func_name: str, kwargs: dict) -> str:
    """Build the tenant-scoped key for a cached call.

    Only simple keyword values take part in the key; injected objects
    (AsyncSession, Actor, ...) and underscore-prefixed kwargs are skipped.
    """
    cache_kwargs = {}
    for k, v in kwargs.items():
        if k.startswith("_"):
            continue
        if isinstance(v, (int, str, bool, float, type(None))):
            cache_kwargs[k] = v
        elif isinstance(v, (date, datetime)):
            cache_kwargs[k] = v.isoformat()

    key = f"{prefix}:{func_name}:{cache_key(**cache_kwargs)}"
    tenant = _tenant_ctx.get()
    return f"t:{tenant}:{key}" if tenant else key


def _serialize(result):
    if hasattr(result, "model_dump"):
        return result.model_dump(mode="json")
    if isinstance(result, list) and result and hasattr(result[0], "model_dump"):
        return [item.model_dump(mode="json") for item in result]
    return result


def cached(ttl: int = 300, prefix: str = "cache"):
    """Decorator to cache an async function's JSON-able result in Redis.

    Example:
        @cached(ttl=600, prefix="lookups")
        async def list_vehicles(db: AsyncSession, tenant_id: str):
            ...

    A Redis failure is logged and the wrapped function runs uncached.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if not settings.cache_enabled:
                return await func(*args, **kwargs)

            key = build_key(prefix, func.__name__, kwargs)
            try:
                redis_client = await get_redis()
                cached_value = await redis_client.get(key)
                if cached_value:
                    logger.debug(f"Cache HIT: {key}")
                    return json.loads(cached_value)

                logger.debug(f"Cache MISS: {key}")
                result = await func(*args, **kwargs)
                await redis_client.setex(key, ttl, json.dumps(_serialize(result)))
                return result

            except redis.RedisError as e:
                logger.warning(f"Redis error (falling back to uncached): {e}")
                return await func(*args, **kwargs)

        return wrapper

    return decorator
