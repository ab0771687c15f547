"""Resolution cache backend tests (in-memory and Redis)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

from src.tenancy.core.cache import MISS, InMemoryResolutionCache, RedisResolutionCache

PAYLOAD = {"tenant_slug": "alpha-store", "channel_token": "tok"}


# ── In-memory ───────────────────────────────────────────────────────────────


async def test_memory_miss_then_hit(clock):
    cache = InMemoryResolutionCache(clock=clock)
    assert await cache.get("alpha.example.tld") is MISS

    await cache.set("alpha.example.tld", PAYLOAD, ttl_seconds=60)
    assert await cache.get("alpha.example.tld") == PAYLOAD


async def test_memory_negative_entry_is_not_a_miss(clock):
    cache = InMemoryResolutionCache(clock=clock)
    await cache.set("nowhere.example.tld", None, ttl_seconds=10)
    assert await cache.get("nowhere.example.tld") is None


async def test_memory_entry_expires(clock):
    cache = InMemoryResolutionCache(clock=clock)
    await cache.set("alpha.example.tld", PAYLOAD, ttl_seconds=60)

    clock.advance(59)
    assert await cache.get("alpha.example.tld") == PAYLOAD
    clock.advance(1)
    assert await cache.get("alpha.example.tld") is MISS
    assert len(cache) == 0


async def test_memory_delete_and_clear(clock):
    cache = InMemoryResolutionCache(clock=clock)
    await cache.set("a.example.tld", PAYLOAD, ttl_seconds=60)
    await cache.set("b.example.tld", None, ttl_seconds=10)

    await cache.delete("a.example.tld")
    await cache.delete("a.example.tld")
    assert await cache.get("a.example.tld") is MISS

    await cache.clear()
    assert len(cache) == 0


# ── Redis ───────────────────────────────────────────────────────────────────


def _redis_mock() -> MagicMock:
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.delete = AsyncMock()
    return redis


async def test_redis_miss():
    redis = _redis_mock()
    cache = RedisResolutionCache(redis)
    assert await cache.get("alpha.example.tld") is MISS
    redis.get.assert_awaited_once_with("tenancy:resolve:alpha.example.tld")


async def test_redis_set_uses_ttl():
    redis = _redis_mock()
    cache = RedisResolutionCache(redis)

    await cache.set("alpha.example.tld", PAYLOAD, ttl_seconds=60)

    redis.set.assert_awaited_once_with(
        "tenancy:resolve:alpha.example.tld", json.dumps(PAYLOAD), ex=60
    )


async def test_redis_negative_roundtrip():
    redis = _redis_mock()
    cache = RedisResolutionCache(redis)
    await cache.set("nowhere.example.tld", None, ttl_seconds=10)

    stored = redis.set.await_args.args[1]
    redis.get.return_value = stored
    assert await cache.get("nowhere.example.tld") is None


async def test_redis_hit_decodes_json():
    redis = _redis_mock()
    redis.get.return_value = json.dumps(PAYLOAD)
    cache = RedisResolutionCache(redis)
    assert await cache.get("alpha.example.tld") == PAYLOAD


async def test_redis_clear_scans_prefix():
    redis = _redis_mock()

    async def scan_iter(match):
        assert match == "tenancy:resolve:*"
        for key in ("tenancy:resolve:a.example.tld", "tenancy:resolve:b.example.tld"):
            yield key

    redis.scan_iter = scan_iter
    cache = RedisResolutionCache(redis)

    await cache.clear()

    redis.delete.assert_awaited_once_with(
        "tenancy:resolve:a.example.tld", "tenancy:resolve:b.example.tld"
    )
