"""Time-bounded cache for hostname resolution results.

Two backends share one interface:
- InMemoryResolutionCache: per-process dict guarded by an asyncio.Lock
- RedisResolutionCache: shared across processes, keys tenancy:resolve:{host}

Values are plain JSON-serializable dicts. A cached ``None`` (negative
result) is stored as an explicit marker so that a miss and a cached
not-found can be told apart.
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import redis.asyncio as aioredis

KEY_PREFIX = "tenancy:resolve:"

_NOT_FOUND = {"__not_found__": True}


class CacheMiss:
    """Sentinel returned by get() when nothing is cached for a hostname."""

    def __repr__(self) -> str:
        return "MISS"


MISS = CacheMiss()


class ResolutionCache(ABC):
    """Maps normalized hostname to a resolution payload (or None) with a TTL."""

    @abstractmethod
    async def get(self, hostname: str) -> dict[str, Any] | None | CacheMiss:
        ...

    @abstractmethod
    async def set(self, hostname: str, value: dict[str, Any] | None, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def delete(self, hostname: str) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...


class InMemoryResolutionCache(ResolutionCache):
    """Process-local cache.

    Args:
        clock: Monotonic time source in seconds, injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, dict[str, Any] | None]] = {}
        self._lock = asyncio.Lock()

    async def get(self, hostname: str) -> dict[str, Any] | None | CacheMiss:
        async with self._lock:
            entry = self._entries.get(hostname)
            if entry is None:
                return MISS
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[hostname]
                return MISS
            return value

    async def set(self, hostname: str, value: dict[str, Any] | None, ttl_seconds: int) -> None:
        async with self._lock:
            self._entries[hostname] = (self._clock() + ttl_seconds, value)

    async def delete(self, hostname: str) -> None:
        async with self._lock:
            self._entries.pop(hostname, None)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisResolutionCache(ResolutionCache):
    """Cache shared by every worker process through Redis.

    Redis failures propagate; the resolver treats them as resolution errors.
    """

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    @staticmethod
    def _key(hostname: str) -> str:
        return f"{KEY_PREFIX}{hostname}"

    async def get(self, hostname: str) -> dict[str, Any] | None | CacheMiss:
        raw = await self._redis.get(self._key(hostname))
        if raw is None:
            return MISS
        data = json.loads(raw)
        if data == _NOT_FOUND:
            return None
        return data

    async def set(self, hostname: str, value: dict[str, Any] | None, ttl_seconds: int) -> None:
        payload = json.dumps(value if value is not None else _NOT_FOUND)
        await self._redis.set(self._key(hostname), payload, ex=ttl_seconds)

    async def delete(self, hostname: str) -> None:
        await self._redis.delete(self._key(hostname))

    async def clear(self) -> None:
        keys = [key async for key in self._redis.scan_iter(match=f"{KEY_PREFIX}*")]
        if keys:
            await self._redis.delete(*keys)
