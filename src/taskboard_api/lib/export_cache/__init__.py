"""Export result cache: short-lived memo of completed exports.

Public API:
    - ResultCache: Protocol implemented by all backends
    - InMemoryResultCache: Process-local backend with monotonic-clock TTL
    - RedisResultCache: Redis backend storing JSON snapshots with SETEX
    - create_result_cache: Pick a backend from configuration
    - generate_cache_key / canonical_filters / normalize_filters: Key helpers

Backends raise on failure; callers that treat the cache as optional are
responsible for isolating those failures.
"""

import json
import time
from typing import Any, Protocol

import redis.asyncio as aioredis

from taskboard_api.lib.export_cache.keys import canonical_filters, generate_cache_key, normalize_filters


class ResultCache(Protocol):
    """Key -> export snapshot mapping with per-entry expiry."""

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the snapshot stored under ``key``, or None on a miss."""
        ...

    async def put(self, key: str, snapshot: dict[str, Any], ttl_seconds: int) -> None:
        """Store ``snapshot`` under ``key`` for ``ttl_seconds``."""
        ...

    async def close(self) -> None:
        """Release any connections held by the backend."""
        ...


class InMemoryResultCache:
    """Process-local cache used when no Redis server is configured.

    Expired entries are dropped when read and swept on every ``put``.
    """

    def __init__(self, clock: Any = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, dict[str, Any]]] = {}

    async def get(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, snapshot = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return dict(snapshot)

    async def put(self, key: str, snapshot: dict[str, Any], ttl_seconds: int) -> None:
        now = self._clock()
        self._evict_expired(now)
        self._entries[key] = (now + ttl_seconds, dict(snapshot))

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisResultCache:
    """Redis-backed cache; entries expire server-side via SETEX."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self.redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisResultCache":
        return cls(aioredis.from_url(url))

    async def get(self, key: str) -> dict[str, Any] | None:
        data = await self.redis.get(key)
        if not data:
            return None
        return json.loads(data)

    async def put(self, key: str, snapshot: dict[str, Any], ttl_seconds: int) -> None:
        await self.redis.setex(key, ttl_seconds, json.dumps(snapshot, default=str))

    async def close(self) -> None:
        await self.redis.aclose()


def create_result_cache(redis_url: str | None) -> ResultCache:
    """Return a Redis cache when ``redis_url`` is set, else an in-memory one."""
    if redis_url:
        return RedisResultCache.from_url(redis_url)
    return InMemoryResultCache()


__all__ = [
    "InMemoryResultCache",
    "RedisResultCache",
    "ResultCache",
    "canonical_filters",
    "create_result_cache",
    "generate_cache_key",
    "normalize_filters",
]
