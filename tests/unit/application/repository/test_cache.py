"""Tests for cache backends."""

from datetime import timedelta

import pytest

from stackvault.application.repository import (
    CacheBackend,
    InMemoryCacheBackend,
    NullCacheBackend,
    scoped_cache_key,
)
from tests.fixtures.documents import utc


class FakeClock:
    def __init__(self):
        self.now = utc(2024, 1, 1)

    def __call__(self):
        return self.now


def test_scoped_cache_key():
    assert scoped_cache_key("stack", "01HV4Z") == "stack-01HV4Z"
    assert scoped_cache_key("stack", "count-recent") == "stack-count-recent"


@pytest.mark.asyncio
async def test_null_cache_never_holds_values():
    cache = CacheBackend.null()

    await cache.set("stack-1", {"id": "1"}, utc(2100, 1, 1))

    assert isinstance(cache, NullCacheBackend)
    assert not (await cache.get("stack-1")).has_value
    assert await cache.remove_by_prefix("stack-") == 0


@pytest.mark.asyncio
async def test_in_memory_cache_round_trip():
    clock = FakeClock()
    cache = InMemoryCacheBackend(clock=clock)

    await cache.set("stack-1", {"id": "1"}, clock.now + timedelta(minutes=5))
    cached = await cache.get("stack-1")

    assert cached.has_value
    assert cached.value == {"id": "1"}


@pytest.mark.asyncio
async def test_falsy_values_are_cached():
    clock = FakeClock()
    cache = InMemoryCacheBackend(clock=clock)

    await cache.set("stack-count-recent", 0, clock.now + timedelta(minutes=5))

    assert (await cache.get("stack-count-recent")).has_value


@pytest.mark.asyncio
async def test_entries_expire():
    clock = FakeClock()
    cache = InMemoryCacheBackend(clock=clock)
    await cache.set("stack-1", {"id": "1"}, clock.now + timedelta(minutes=5))

    clock.now += timedelta(minutes=5)

    assert not (await cache.get("stack-1")).has_value
    assert "stack-1" not in cache.entries


@pytest.mark.asyncio
async def test_writes_sweep_expired_entries():
    clock = FakeClock()
    cache = InMemoryCacheBackend(clock=clock)
    await cache.set("stack-1", {"id": "1"}, clock.now + timedelta(minutes=1))
    await cache.set("stack-2", {"id": "2"}, clock.now + timedelta(minutes=10))

    clock.now += timedelta(minutes=5)
    await cache.set("stack-3", {"id": "3"}, clock.now + timedelta(minutes=5))

    assert set(cache.entries) == {"stack-2", "stack-3"}


@pytest.mark.asyncio
async def test_remove_by_prefix_only_touches_matching_keys():
    clock = FakeClock()
    cache = InMemoryCacheBackend(clock=clock)
    expires_at = clock.now + timedelta(minutes=5)
    for key in ["stack-1", "stack-2", "stacks-1", "project-1"]:
        await cache.set(key, key, expires_at)

    removed = await cache.remove_by_prefix("stack-")

    assert removed == 2
    assert sorted(cache.entries) == ["project-1", "stacks-1"]
