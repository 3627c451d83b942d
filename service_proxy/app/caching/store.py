"""
Cache stores keyed by request fingerprint.

Expiration is a read-time predicate: ``get`` never returns an entry whose
``expires_at`` has passed, whether or not the backend still holds it.
"""

import json
import math
from datetime import datetime
from typing import Callable, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import StoreError
from shared.logging import get_logger
from .models import CacheEntry, utcnow


Clock = Callable[[], datetime]


class CacheStore:
    """Interface every cache backend implements."""

    async def get(self, fingerprint: str) -> Optional[CacheEntry]:  # pragma: no cover - interface
        raise NotImplementedError

    async def set(self, entry: CacheEntry) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryCacheStore(CacheStore):
    """Process-local store for development and tests."""

    def __init__(self, now: Clock = utcnow):
        self._now = now
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, fingerprint: str) -> Optional[CacheEntry]:
        entry = self._entries.get(fingerprint)
        if entry is None or not entry.is_live(self._now()):
            return None
        return entry

    async def set(self, entry: CacheEntry) -> None:
        self._entries[entry.fingerprint] = entry

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheStore(CacheStore):
    """Redis-backed store holding one JSON document per fingerprint."""

    def __init__(self, redis_url: str, key_prefix: str = "proxy:cache", now: Clock = utcnow):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.logger = get_logger("proxy.cache_store")
        self._now = now
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, fingerprint: str) -> str:
        return f"{self.key_prefix}:{fingerprint}"

    async def get(self, fingerprint: str) -> Optional[CacheEntry]:
        key = self._make_key(fingerprint)
        try:
            redis_client = await self._get_redis()
            raw = await redis_client.get(key)
            if raw is None:
                return None
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            entry = CacheEntry.from_document(json.loads(raw))
        except (RedisError, OSError, ValueError, KeyError) as exc:
            self.logger.error("Cache get error", key=key, error=str(exc))
            raise StoreError("Cache read failed", details={"key": key}) from exc

        if not entry.is_live(self._now()):
            return None
        return entry

    async def set(self, entry: CacheEntry) -> None:
        key = self._make_key(entry.fingerprint)
        remaining = (entry.expires_at - self._now()).total_seconds()
        # Native expiry only evicts rows that are already logically dead.
        ttl = max(1, math.ceil(remaining))

        try:
            redis_client = await self._get_redis()
            await redis_client.set(key, json.dumps(entry.to_document()), ex=ttl)
        except (RedisError, OSError) as exc:
            self.logger.error("Cache set error", key=key, error=str(exc))
            raise StoreError("Cache write failed", details={"key": key}) from exc

        self.logger.debug("Cached response", key=key, ttl=ttl)

    async def ping(self) -> bool:
        try:
            redis_client = await self._get_redis()
            return bool(await redis_client.ping())
        except (RedisError, OSError) as exc:
            self.logger.warning("Cache store ping failed", error=str(exc))
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_cache_store(backend: str, redis_url: str, key_prefix: str = "proxy:cache") -> CacheStore:
    """Build the configured cache backend."""
    if backend == "memory":
        return InMemoryCacheStore()
    if backend == "redis":
        return RedisCacheStore(redis_url, key_prefix=key_prefix)
    raise ValueError(f"Unknown cache backend: {backend}")
