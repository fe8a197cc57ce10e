"""Keyed MongoDB collection with indexes created on first use."""

from enum import IntEnum
from typing import Any

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING
from pymongo.asynchronous.collection import AsyncCollection


class IndexDirection(IntEnum):
    ASC = ASCENDING
    DESC = DESCENDING


class IndexSpec(BaseModel):
    """Declarative MongoDB index.

    Example:
        >>> IndexSpec.ttl("expires_at")
        IndexSpec(keys=[('expires_at', <IndexDirection.ASC: 1>)], unique=False, expire_after_seconds=0)
    """

    keys: list[tuple[str, IndexDirection]]
    unique: bool = False
    expire_after_seconds: int | None = None

    @classmethod
    def ttl(cls, field: str, expire_after_seconds: int = 0) -> "IndexSpec":
        """Index that lets MongoDB purge documents once ``field`` is in the past."""
        return cls(keys=[(field, IndexDirection.ASC)], expire_after_seconds=expire_after_seconds)

    async def apply(self, collection: AsyncCollection[dict[str, Any]]) -> None:
        options: dict[str, Any] = {"unique": self.unique}
        if self.expire_after_seconds is not None:
            options["expireAfterSeconds"] = self.expire_after_seconds
        await collection.create_index(
            [(field, int(direction)) for field, direction in self.keys], **options
        )


class IndexedCollection:
    """Documents addressed by ``_id`` in a single collection.

    Declared indexes are created before the first operation. Creation is
    idempotent on the server, so concurrent first calls are harmless.

    Example:
        >>> entries = IndexedCollection(config.cache, [IndexSpec.ttl("expires_at")])
        >>> await entries.upsert("stack-01HV4Z", {"value": {...}, "expires_at": expires_at})
        >>> await entries.get("stack-01HV4Z")
    """

    def __init__(
        self,
        collection: AsyncCollection[dict[str, Any]],
        indexes: list[IndexSpec] | None = None,
    ) -> None:
        self._collection = collection
        self._indexes = indexes or []
        self._ready = False

    async def ensure_indexes(self) -> None:
        if self._ready:
            return
        for spec in self._indexes:
            await spec.apply(self._collection)
        self._ready = True

    async def get(self, id: str, **conditions: Any) -> dict[str, Any] | None:
        """Return the document stored under ``id`` if it meets ``conditions``."""
        await self.ensure_indexes()
        document: dict[str, Any] | None = await self._collection.find_one(
            {"_id": id, **conditions}
        )
        return document

    async def upsert(self, id: str, fields: dict[str, Any]) -> None:
        await self.ensure_indexes()
        await self._collection.replace_one({"_id": id}, {"_id": id, **fields}, upsert=True)

    async def delete(self, filter: dict[str, Any]) -> int:
        """Delete every document matching ``filter`` and return how many went."""
        await self.ensure_indexes()
        result = await self._collection.delete_many(filter)
        return result.deleted_count
