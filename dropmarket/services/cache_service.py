"""
Cache Service for aggregated catalog feeds.

Supports:
1. Redis (preferred for production)
2. In-memory fallback (for development/testing)

Keys follow ``{namespace}:{resource}:{identifier}``, e.g.
``dropmarket:catalog:<supplier_list_id>``. Entries are dropped whenever a
product or variant change is published on the change feed.
"""
import json
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Dict

import redis.asyncio as redis

from dropmarket.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract cache backend interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def clear_pattern(self, pattern: str) -> int:
        pass


class InMemoryCache(CacheBackend):
    """In-memory cache; not shared across server instances."""

    def __init__(self):
        self._cache: Dict[str, tuple[Any, datetime]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            if key in self._cache:
                value, expires_at = self._cache[key]
                if expires_at > datetime.now(timezone.utc):
                    return value
                del self._cache[key]
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        async with self._lock:
            self._cache[key] = (value, datetime.now(timezone.utc) + timedelta(seconds=ttl))
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def clear_pattern(self, pattern: str) -> int:
        """Clear keys matching pattern (simple prefix match)."""
        async with self._lock:
            prefix = pattern.rstrip('*')
            keys_to_delete = [k for k in self._cache if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)


class RedisCache(CacheBackend):
    """
    Redis cache backend.

    Cache failures degrade to a miss; they are logged, never raised into the
    catalog path.
    """

    def __init__(self, redis_url: str):
        self._client = redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self._client.get(key)
            return json.loads(value) if value else None
        except redis.RedisError as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        try:
            await self._client.set(key, json.dumps(value), ex=ttl)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis set failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._client.delete(key)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
            return False

    async def clear_pattern(self, pattern: str) -> int:
        try:
            cursor = 0
            deleted = 0
            while True:
                cursor, keys = await self._client.scan(cursor, match=pattern, count=100)
                if keys:
                    await self._client.delete(*keys)
                    deleted += len(keys)
                if cursor == 0:
                    break
            return deleted
        except redis.RedisError as e:
            logger.warning(f"Redis clear failed for {pattern}: {e}")
            return 0


class CacheService:
    """Namespaced cache for derived catalog data."""

    def __init__(self, backend: CacheBackend, namespace: str = "dropmarket"):
        self._backend = backend
        self._namespace = namespace

    def _make_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        return await self._backend.get(self._make_key(key))

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        return await self._backend.set(self._make_key(key), value, ttl)

    async def delete(self, key: str) -> bool:
        return await self._backend.delete(self._make_key(key))

    async def clear_pattern(self, pattern: str) -> int:
        return await self._backend.clear_pattern(self._make_key(pattern))

    # ==================== Catalog Cache ====================

    @staticmethod
    def _catalog_key(supplier_list_id: str) -> str:
        return f"catalog:{supplier_list_id}"

    async def get_catalog(self, supplier_list_id: str) -> Optional[dict]:
        return await self.get(self._catalog_key(supplier_list_id))

    async def set_catalog(self, supplier_list_id: str, data: dict, ttl: Optional[int] = None) -> bool:
        ttl = ttl or settings.CATALOG_CACHE_TTL
        return await self.set(self._catalog_key(supplier_list_id), data, ttl)

    async def invalidate_catalog(self, supplier_list_id: Optional[str] = None) -> int:
        """Drop one list's feed, or every feed when no list is given."""
        if supplier_list_id:
            return 1 if await self.delete(self._catalog_key(supplier_list_id)) else 0
        return await self.clear_pattern("catalog:*")


_cache_instance: Optional[CacheService] = None


def get_cache() -> CacheService:
    """Get the cache service singleton."""
    global _cache_instance

    if _cache_instance is None:
        if settings.REDIS_URL and settings.CACHE_ENABLED:
            backend = RedisCache(settings.REDIS_URL)
            logger.info("Cache initialized with Redis backend")
        else:
            backend = InMemoryCache()
            logger.info("Cache initialized with in-memory backend")
        _cache_instance = CacheService(backend)

    return _cache_instance


def reset_cache() -> None:
    global _cache_instance
    _cache_instance = None
