import re
from datetime import datetime
from typing import Any

from stackvault.application.repository.cache import CacheBackend, CacheValue, utc_now

from .collection import IndexedCollection, IndexSpec
from .config import MongoConfiguration


class MongoCacheBackend(CacheBackend):
    """MongoDB implementation of the CacheBackend interface.

    Entries are stored one per key in the cache collection. A TTL index on
    ``expires_at`` lets MongoDB purge expired entries; because the purge runs
    periodically, reads also compare the expiry against the current time.

    Example:
        >>> config = MongoConfiguration(uri="mongodb://localhost:27017")
        >>> cache = MongoCacheBackend(config)
        >>> await cache.set("stack-01HV4Z", {"id": "01HV4Z"}, expires_at)
    """

    def __init__(self, config: MongoConfiguration):
        self._entries = IndexedCollection(config.cache, [IndexSpec.ttl("expires_at")])

    async def get(self, key: str) -> CacheValue:
        entry = await self._entries.get(key, expires_at={"$gt": utc_now()})
        if entry is None:
            return CacheValue.missing()
        return CacheValue(has_value=True, value=entry["value"])

    async def set(self, key: str, value: Any, expires_at: datetime) -> None:
        await self._entries.upsert(key, {"value": value, "expires_at": expires_at})

    async def remove(self, key: str) -> None:
        await self._entries.delete({"_id": key})

    async def remove_by_prefix(self, prefix: str) -> int:
        return await self._entries.delete({"_id": {"$regex": f"^{re.escape(prefix)}"}})
