"""Integration tests for MongoCacheBackend."""

from datetime import timedelta

import pytest

from stackvault.application.repository.cache import utc_now
from stackvault.integrations.mongodb import MongoCacheBackend


@pytest.mark.integration
@pytest.mark.asyncio
async def test_set_and_get(mongo_cache: MongoCacheBackend):
    await mongo_cache.set("stack-1", {"id": "1", "tags": ["a"]}, utc_now() + timedelta(minutes=5))

    cached = await mongo_cache.get("stack-1")

    assert cached.has_value
    assert cached.value == {"id": "1", "tags": ["a"]}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_expired_entries_are_not_returned(mongo_cache: MongoCacheBackend):
    await mongo_cache.set("stack-1", {"id": "1"}, utc_now() - timedelta(seconds=1))

    assert not (await mongo_cache.get("stack-1")).has_value


@pytest.mark.integration
@pytest.mark.asyncio
async def test_set_overwrites(mongo_cache: MongoCacheBackend):
    expires_at = utc_now() + timedelta(minutes=5)
    await mongo_cache.set("stack-count-all", 1, expires_at)
    await mongo_cache.set("stack-count-all", 0, expires_at)

    cached = await mongo_cache.get("stack-count-all")

    assert cached.has_value
    assert cached.value == 0


@pytest.mark.integration
@pytest.mark.asyncio
async def test_remove_and_remove_by_prefix(mongo_cache: MongoCacheBackend):
    expires_at = utc_now() + timedelta(minutes=5)
    for key in ["stack-1", "stack-2", "stack.3", "project-1"]:
        await mongo_cache.set(key, key, expires_at)

    await mongo_cache.remove("stack-1")
    removed = await mongo_cache.remove_by_prefix("stack-")

    assert removed == 1
    assert (await mongo_cache.get("stack.3")).has_value
    assert (await mongo_cache.get("project-1")).has_value
