"""
Cache Store for search results.

Key→value store with per-entry TTL and explicit invalidation:
- Lazy expiry (checked on read); periodic sweeping is optional
- Last write wins for a key
- Tag indexes for group invalidation (e.g. all "search" entries)
- Backend failures degrade to "always miss" instead of failing the caller
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, Optional, Set, Tuple

from pydantic import BaseModel, Field
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# Errors that mean "backend unavailable" rather than a programming error
_BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class CacheEntry(BaseModel):
    """Cached value with its storage timestamp and TTL (seconds)."""

    key: str
    value: Dict[str, Any]
    stored_at: float
    ttl: float
    tags: Tuple[str, ...] = Field(default_factory=tuple)

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


class CacheStore(ABC):
    """Interface shared by the in-memory and Redis backends."""

    backend_name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for key, or None if missing or expired."""

    @abstractmethod
    async def set(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: float,
        tags: Iterable[str] = (),
    ) -> None:
        """Store value under key, overwriting unconditionally."""

    @abstractmethod
    async def invalidate(self, key: str) -> bool:
        """Drop a single key. Returns True if a live entry was removed."""

    @abstractmethod
    async def invalidate_tag(self, tag: str) -> int:
        """Drop every entry stored with tag. Returns number of keys removed."""

    @abstractmethod
    async def flush_all(self) -> int:
        """Drop every entry owned by this store. Returns number of keys removed."""

    async def start(self) -> None:
        """Start background work (if any)."""

    async def close(self) -> None:
        """Release resources held by the store."""


class InMemoryCacheStore(CacheStore):
    """
    Process-local cache store.

    Safe under concurrent coroutines on one event loop: every operation
    completes without suspending, so no partial state is ever observed.
    """

    backend_name = "in-memory"

    def __init__(self, clock: Clock = time.time, sweep_interval: float = 0):
        self._entries: Dict[str, CacheEntry] = {}
        self._tags: Dict[str, Set[str]] = {}
        self._clock = clock
        self.sweep_interval = sweep_interval
        self._sweep_task: Optional[asyncio.Task] = None
        self._shutdown = False

    def __len__(self) -> int:
        return len(self._entries)

    def _drop(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        for tag in entry.tags:
            keys = self._tags.get(tag)
            if not keys:
                continue
            keys.discard(key)
            if not keys:
                self._tags.pop(tag, None)
        return True

    async def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            logger.debug("Cache entry expired: %s", key)
            self._drop(key)
            return None
        return entry

    async def set(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: float,
        tags: Iterable[str] = (),
    ) -> None:
        self._drop(key)
        entry = CacheEntry(
            key=key,
            value=value,
            stored_at=self._clock(),
            ttl=ttl,
            tags=tuple(sorted(set(tags))),
        )
        self._entries[key] = entry
        for tag in entry.tags:
            self._tags.setdefault(tag, set()).add(key)

    async def invalidate(self, key: str) -> bool:
        entry = self._entries.get(key)
        live = entry is not None and not entry.is_expired(self._clock())
        if self._drop(key):
            logger.debug("Invalidated cache key %s", key)
        return live

    async def invalidate_tag(self, tag: str) -> int:
        keys = list(self._tags.get(tag, ()))
        for key in keys:
            self._drop(key)
        self._tags.pop(tag, None)
        logger.info("Invalidated %d cache entries for tag '%s'", len(keys), tag)
        return len(keys)

    async def flush_all(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        self._tags.clear()
        logger.info("Flushed %d in-memory cache entries", count)
        return count

    def purge_expired(self) -> int:
        """Remove all expired entries now. Returns number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            self._drop(key)
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)

    async def start(self) -> None:
        if self.sweep_interval > 0 and self._sweep_task is None:
            logger.info("Starting in-memory cache sweep task (interval: %ss)", self.sweep_interval)
            self._shutdown = False
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def _sweep_loop(self):
        """Background task to periodically drop expired entries."""
        try:
            while not self._shutdown:
                await asyncio.sleep(self.sweep_interval)
                self.purge_expired()
        except asyncio.CancelledError:
            logger.info("Cache sweep loop cancelled")
            raise

    async def close(self) -> None:
        self._shutdown = True
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            logger.info("In-memory cache sweep task stopped")
        self._sweep_task = None


class RedisCacheStore(CacheStore):
    """
    Redis-backed cache store.

    Entries are JSON envelopes under `<namespace>:<key>` with a server-side
    expiry; the envelope's stored_at/ttl is checked again on read. Tag
    indexes are sorted sets under `<namespace>:tag:<tag>`, scored by each
    member's expiry time and pruned of expired members on every write.
    """

    backend_name = "redis"

    def __init__(
        self,
        redis_client: Redis,
        *,
        namespace: str = "tc",
        clock: Clock = time.time,
    ):
        self.redis = redis_client
        self.namespace = namespace.rstrip(":")
        self.tag_namespace = f"{self.namespace}:tag"
        self._clock = clock

    def _entry_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _tag_key(self, tag: str) -> str:
        return f"{self.tag_namespace}:{tag}"

    @staticmethod
    def _expiry_seconds(ttl: float) -> int:
        return max(1, math.ceil(ttl))

    @staticmethod
    def _parse(key: str, raw: Optional[str]) -> Optional[CacheEntry]:
        if not raw:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValueError as exc:
            logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
            return None

    async def get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = await self.redis.get(self._entry_key(key))
        except _BACKEND_ERRORS as exc:
            logger.warning("Cache get failed for %s, treating as miss: %s", key, exc)
            return None

        entry = self._parse(key, raw)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            logger.debug("Cache entry expired: %s", key)
            return None
        return entry

    async def set(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: float,
        tags: Iterable[str] = (),
    ) -> None:
        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            stored_at=now,
            ttl=ttl,
            tags=tuple(sorted(set(tags))),
        )
        entry_key = self._entry_key(key)
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                pipe.set(entry_key, entry.model_dump_json(), ex=self._expiry_seconds(ttl))
                for tag in entry.tags:
                    tag_key = self._tag_key(tag)
                    pipe.zadd(tag_key, {entry_key: now + ttl})
                    pipe.zremrangebyscore(tag_key, "-inf", f"({now}")
                await pipe.execute()
        except _BACKEND_ERRORS as exc:
            logger.warning("Cache set failed for %s, skipping: %s", key, exc)

    async def invalidate(self, key: str) -> bool:
        entry_key = self._entry_key(key)
        try:
            entry = self._parse(key, await self.redis.get(entry_key))
            async with self.redis.pipeline(transaction=False) as pipe:
                pipe.delete(entry_key)
                for tag in entry.tags if entry else ():
                    pipe.zrem(self._tag_key(tag), entry_key)
                deleted, *_ = await pipe.execute()
        except _BACKEND_ERRORS as exc:
            logger.warning("Cache invalidate failed for %s: %s", key, exc)
            return False
        return bool(deleted) and entry is not None and not entry.is_expired(self._clock())

    async def invalidate_tag(self, tag: str) -> int:
        tag_key = self._tag_key(tag)
        try:
            members = await self.redis.zrange(tag_key, 0, -1)
            removed = await self.redis.delete(*members) if members else 0
            await self.redis.delete(tag_key)
        except _BACKEND_ERRORS as exc:
            logger.warning("Cache tag invalidation failed for '%s': %s", tag, exc)
            return 0
        logger.info("Invalidated %d cache entries for tag '%s'", removed, tag)
        return removed

    async def flush_all(self) -> int:
        """Delete every key under the namespace. Uses SCAN to avoid blocking Redis."""
        pattern = f"{self.namespace}:*"
        removed = 0
        cursor = 0
        try:
            while True:
                cursor, keys = await self.redis.scan(cursor, match=pattern, count=100)
                if keys:
                    removed += await self.redis.delete(*keys)
                if cursor == 0:
                    break
        except _BACKEND_ERRORS as exc:
            logger.warning("Cache flush failed: %s", exc)
        logger.info("Flushed %d Redis cache keys under '%s'", removed, self.namespace)
        return removed


def create_cache_store(
    backend: str,
    redis_client: Optional[Redis] = None,
    *,
    namespace: str = "tc",
    sweep_interval: float = 0,
) -> CacheStore:
    """
    Build the configured cache store.

    Falls back to the in-memory store when Redis is requested but no
    client is available.
    """
    if backend == "redis":
        if redis_client is not None:
            logger.info("Using Redis cache store (namespace: %s)", namespace)
            return RedisCacheStore(redis_client, namespace=namespace)
        logger.warning("Redis cache requested but client unavailable; using in-memory cache store")
    elif backend != "memory":
        logger.warning("Unknown cache backend '%s'; using in-memory cache store", backend)

    return InMemoryCacheStore(sweep_interval=sweep_interval)
