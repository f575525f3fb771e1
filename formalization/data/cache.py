"""Redis cache decorator for data source methods.

Caches upstream responses with configurable TTLs to avoid repeated lookups
for the same credit request while a contract is being formalized.
"""

import functools
import hashlib
import json
import logging
from typing import Any, Callable

import redis.asyncio as redis

from formalization.config import settings

logger = logging.getLogger(__name__)

_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


def _cache_key(prefix: str, *args: Any, **kwargs: Any) -> str:
    """Generate a deterministic cache key from function arguments."""
    raw = json.dumps({"args": [str(a) for a in args], "kwargs": {k: str(v) for k, v in kwargs.items()}}, sort_keys=True)
    h = hashlib.sha256(raw.encode()).hexdigest()[:16]
    return f"formalization:{prefix}:{h}"


def cached(prefix: str, ttl_seconds: Callable[[], int] | int = 300, enabled: Callable[[], bool] | None = None):
    """Cache decorator for async data source methods.

    Args:
        prefix: Cache key prefix (e.g., "origination:summary")
        ttl_seconds: Time-to-live in seconds, or a callable returning it
        enabled: Optional switch evaluated per call; falsy skips the cache

    ``None`` results are never stored so a missing record is looked up again.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            if enabled is not None and not enabled():
                return await func(*args, **kwargs)

            key = _cache_key(prefix, *args[1:], **kwargs)  # Skip self
            try:
                r = await get_redis()
                cached_value = await r.get(key)
                if cached_value is not None:
                    logger.debug("Cache hit: %s", key)
                    return json.loads(cached_value)
            except Exception:
                logger.warning("Redis unavailable, skipping cache for %s", key)

            result = await func(*args, **kwargs)
            if result is None:
                return result

            ttl = ttl_seconds() if callable(ttl_seconds) else ttl_seconds
            try:
                r = await get_redis()
                await r.setex(key, ttl, json.dumps(result, default=str))
            except Exception:
                logger.warning("Failed to write cache for %s", key)

            return result
        return wrapper
    return decorator
