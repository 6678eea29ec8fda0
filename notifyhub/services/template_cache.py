"""
Template Cache

Read-through Redis cache in front of the template store. Cache failures are
never outages: reads fall back to the loader, writes are skipped.
"""
import json
from typing import Any, Awaitable, Callable

from redis.exceptions import RedisError

from notifyhub.logging_config import get_logger
from notifyhub.routes.metrics import track_cache_hit, track_cache_miss

log = get_logger(component="template_cache")

ALL_TEMPLATES_KEY = "all-templates"


def template_key(template_id: int) -> str:
    return f"template:{template_id}"


class TemplateCache:
    """Read-through cache keyed by ``all-templates`` and ``template:<id>``."""

    def __init__(self, redis, ttl: int = 300):
        self.redis = redis
        self.ttl = ttl

    async def get(self, key: str) -> Any | None:
        """Get value from cache. Returns None if missing or cache is unavailable."""
        try:
            raw = await self.redis.get(key)
        except (RedisError, OSError) as e:
            log.warning("cache_get_failed", key=key, error=str(e))
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        """Set value with TTL. Fails silently if cache unavailable."""
        try:
            await self.redis.set(key, json.dumps(value), ex=self.ttl)
        except (RedisError, OSError) as e:
            log.warning("cache_set_failed", key=key, error=str(e))

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value verbatim, or load, populate and return it.

        A loader returning None is not cached.
        """
        cached = await self.get(key)
        if cached is not None:
            track_cache_hit()
            return cached

        track_cache_miss()
        value = await loader()
        if value is not None:
            await self.set(key, value)
        return value

    async def invalidate(self, template_id: int | None = None) -> None:
        """Drop the list key and, if given, the per-template key."""
        keys = [ALL_TEMPLATES_KEY]
        if template_id is not None:
            keys.append(template_key(template_id))
        try:
            await self.redis.delete(*keys)
        except (RedisError, OSError) as e:
            # Stale entries expire with the TTL
            log.error("cache_invalidate_failed", keys=keys, error=str(e))
