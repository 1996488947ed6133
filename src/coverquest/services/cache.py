from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from redis.asyncio import Redis
from redis.exceptions import LockError, RedisError

from ..core.errors import StorageFailure

LOCK_PREFIX = "coverquest:lock:"

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract key-value contract supporting async usage."""

    @abstractmethod
    async def get(self, key: str) -> Any:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store ``value`` only if ``key`` is absent; return whether it was stored."""
        raise NotImplementedError

    @abstractmethod
    def lock(self, key: str, timeout: float = 10.0) -> Any:
        """Async context manager serialising work on ``key``."""
        raise NotImplementedError

    async def remember(
        self,
        key: str,
        ttl: int | None,
        creator: Callable[[], Awaitable[Any]],
    ) -> Any:
        existing = await self.get(key)
        if existing is not None:
            return existing
        value = await creator()
        await self.set(key, value, ttl)
        return value


class InMemoryCache(CacheBackend):
    """Simple process-local cache with TTL support."""

    def __init__(self) -> None:
        self._store: dict[str, tuple[Any, float | None]] = {}
        self._lock = asyncio.Lock()
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._key_lock_users: dict[str, int] = {}

    def _read(self, key: str) -> Any:
        entry = self._store.get(key)
        if not entry:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at < time.time():
            del self._store[key]
            return None
        return value

    async def get(self, key: str) -> Any:
        async with self._lock:
            return self._read(key)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        if value is None:
            async with self._lock:
                self._store.pop(key, None)
            return
        expires_at = time.time() + ttl if ttl else None
        async with self._lock:
            self._store[key] = (value, expires_at)

    async def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        expires_at = time.time() + ttl if ttl else None
        async with self._lock:
            if self._read(key) is not None:
                return False
            self._store[key] = (value, expires_at)
            return True

    @asynccontextmanager
    async def lock(self, key: str, timeout: float = 10.0) -> AsyncIterator[None]:
        # Entries live only while a holder or waiter references them.
        key_lock = self._key_locks.get(key)
        if key_lock is None:
            key_lock = self._key_locks[key] = asyncio.Lock()
        self._key_lock_users[key] = self._key_lock_users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(key_lock.acquire(), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise StorageFailure(f"Timed out waiting for lock on {key}") from exc
            try:
                yield
            finally:
                key_lock.release()
        finally:
            remaining = self._key_lock_users[key] - 1
            if remaining:
                self._key_lock_users[key] = remaining
            else:
                del self._key_lock_users[key]
                del self._key_locks[key]


class RedisCache(CacheBackend):
    """Redis-backed cache."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    async def get(self, key: str) -> Any:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            raise StorageFailure(f"Redis read failed for {key}") from exc
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            if value is None:
                await self._client.delete(key)
                return
            payload = json.dumps(value, ensure_ascii=False)
            if ttl:
                await self._client.set(key, payload, ex=ttl)
            else:
                await self._client.set(key, payload)
        except RedisError as exc:
            raise StorageFailure(f"Redis write failed for {key}") from exc

    async def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        payload = json.dumps(value, ensure_ascii=False)
        try:
            stored = await self._client.set(key, payload, ex=ttl or None, nx=True)
        except RedisError as exc:
            raise StorageFailure(f"Redis write failed for {key}") from exc
        return bool(stored)

    @asynccontextmanager
    async def lock(self, key: str, timeout: float = 10.0) -> AsyncIterator[None]:
        redis_lock = self._client.lock(f"{LOCK_PREFIX}{key}", timeout=timeout, blocking_timeout=timeout)
        try:
            acquired = await redis_lock.acquire()
        except RedisError as exc:
            raise StorageFailure(f"Redis lock failed for {key}") from exc
        if not acquired:
            raise StorageFailure(f"Timed out waiting for lock on {key}")
        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError as exc:
                logger.warning("Lock on %s expired before release: %s", key, exc)


_cache: CacheBackend | None = None


async def get_cache(redis_url: str | None = None) -> CacheBackend:
    global _cache
    if _cache is not None:
        return _cache
    if redis_url:
        redis_client = Redis.from_url(redis_url, decode_responses=True)
        _cache = RedisCache(redis_client)
    else:
        _cache = InMemoryCache()
    return _cache
