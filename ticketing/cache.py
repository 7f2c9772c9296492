"""Cache-aside read layer over Redis.

The cache never owns data. Every entry mirrors MongoDB state and can be dropped
at any time; readers fall back to the authoritative store on a miss and write
the result back with a TTL. Writers delete the affected keys before they report
success, so a listing read right after a purchase never shows the old count.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

import redis

logger = logging.getLogger("ticketing.cache")

LISTING_TTL = 60 * 60


def tickets_key(event_id: Any) -> str:
    return f"tickets:{event_id}"


def ticket_key(ticket_id: Any) -> str:
    return f"ticket:{ticket_id}"


def purchases_key(user_id: Any) -> str:
    return f"purchases:{user_id}"


def purchase_key(purchase_id: Any) -> str:
    return f"purchase:{purchase_id}"


class CacheStore:
    """JSON values in Redis with per-key expiry."""

    def __init__(self, client: redis.Redis, default_ttl: int = LISTING_TTL) -> None:
        self._client = client
        self.default_ttl = default_ttl

    @classmethod
    def from_url(cls, url: str, default_ttl: int = LISTING_TTL) -> "CacheStore":
        return cls(redis.Redis.from_url(url, socket_timeout=2, socket_connect_timeout=2), default_ttl)

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._client.get(key)
        except redis.RedisError:
            logger.warning("Cache read failed for %s; falling back to store", key, exc_info=True)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            self._client.set(key, json.dumps(value), ex=ttl or self.default_ttl)
        except redis.RedisError:
            logger.warning("Cache write failed for %s", key, exc_info=True)

    def invalidate(self, *keys: str) -> None:
        if not keys:
            return
        try:
            self._client.delete(*keys)
        except redis.RedisError:
            # TTL still bounds how long the stale entry can be served.
            logger.warning("Cache invalidation failed for %s", ", ".join(keys), exc_info=True)

    def fetch(self, key: str, loader: Callable[[], Optional[Any]], ttl: Optional[int] = None) -> Optional[Any]:
        """Return the cached value for ``key`` or load, store and return it.

        A loader result of ``None`` means "nothing there" and is not cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        if value is not None:
            self.set(key, value, ttl)
        return value


class NullCache(CacheStore):
    """Always misses. Used when no Redis is configured."""

    def __init__(self) -> None:
        self.default_ttl = LISTING_TTL

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        pass

    def invalidate(self, *keys: str) -> None:
        pass


def build_cache(redis_url: str, default_ttl: int = LISTING_TTL) -> CacheStore:
    if not redis_url:
        logger.info("REDIS_URL not set; caching disabled")
        return NullCache()
    return CacheStore.from_url(redis_url, default_ttl)
