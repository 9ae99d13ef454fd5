import json
import logging
from typing import Any, Awaitable, Callable

import redis.asyncio as redis

from articlehub.config import settings

logger = logging.getLogger(__name__)

TAGS_KEY = "tags:list"


class CacheManager:
    """
    Cache-aside store for read models that do not depend on the viewer.

    Article projections carry per-viewer vote flags, so only the global
    tag list is cached.  Every method tolerates a missing or failing
    Redis: reads fall through to the loader and writes are skipped, so
    the database stays the only thing a request depends on.
    """

    def __init__(self, url: str | None = None) -> None:
        self.url = url or settings.REDIS_URL
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0

    async def connect(self) -> None:
        """Open the connection pool at application startup."""
        self._redis = redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", self.url)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, caching disabled: %s", exc)
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> Any | None:
        """Return the cached JSON value for *key*, or None on a miss or error."""
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None
        if data is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(data)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def get_or_load(
        self, key: str, loader: Callable[[], Awaitable[Any]], ttl: int | None = None
    ) -> Any:
        """Serve *key* from Redis, or await *loader*, store and return its result."""
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        await self.set(key, value, ttl=ttl)
        return value

    async def delete(self, *keys: str) -> None:
        if not self._redis or not keys:
            return
        try:
            await self._redis.delete(*keys)
        except Exception as exc:
            logger.debug("Cache DELETE error for keys=%r: %s", keys, exc)

    async def invalidate_tags(self) -> None:
        """
        Drop the cached tag list.  Called after every article create,
        update or delete, since any of them can add or retire a tag.
        """
        await self.delete(TAGS_KEY)

    @property
    def stats(self) -> dict:
        """Hit/miss counters for the health endpoint."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Module-level singleton shared across all request handlers.
cache = CacheManager()
