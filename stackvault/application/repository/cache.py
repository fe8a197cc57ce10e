from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def scoped_cache_key(type_name: str, key: str) -> str:
    """Namespace a raw cache key by entity type.

    Examples:
        >>> scoped_cache_key("stack", "01HV4Z")
        'stack-01HV4Z'
    """
    return f"{type_name}-{key}"


@dataclass(frozen=True)
class CacheValue:
    has_value: bool
    value: Any = None

    @staticmethod
    def missing() -> "CacheValue":
        return _MISSING


_MISSING = CacheValue(has_value=False)


class CacheBackend(ABC):
    """Mechanism for caching repository reads.

    A cache backend stores JSON-compatible values under string keys with an
    absolute expiration time. All operations are async to support I/O-bound
    cache backends like Redis or MongoDB. Keys are always scoped by the
    repository before they reach the backend.
    """

    @staticmethod
    def null() -> "CacheBackend":
        return NullCacheBackend()

    @abstractmethod
    async def get(self, key: str) -> CacheValue: ...

    @abstractmethod
    async def set(self, key: str, value: Any, expires_at: datetime) -> None: ...

    @abstractmethod
    async def remove(self, key: str) -> None: ...

    @abstractmethod
    async def remove_by_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``.

        Returns:
            Number of entries removed.
        """
        ...


class NullCacheBackend(CacheBackend):
    async def get(self, key: str) -> CacheValue:
        return CacheValue.missing()

    async def set(self, key: str, value: Any, expires_at: datetime) -> None:
        pass

    async def remove(self, key: str) -> None:
        pass

    async def remove_by_prefix(self, prefix: str) -> int:
        return 0


class InMemoryCacheBackend(CacheBackend):
    """A cache backend that stores entries in a process-local dictionary.

    Expired entries are dropped when they are read, and every write sweeps
    out whatever else has expired. The clock is injectable so tests can move
    time forward.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self.entries: dict[str, tuple[Any, datetime]] = {}
        self.clock = clock

    async def get(self, key: str) -> CacheValue:
        entry = self.entries.get(key)
        if entry is None:
            return CacheValue.missing()

        value, expires_at = entry
        if expires_at <= self.clock():
            self.entries.pop(key, None)
            return CacheValue.missing()
        return CacheValue(has_value=True, value=value)

    async def set(self, key: str, value: Any, expires_at: datetime) -> None:
        self._sweep()
        self.entries[key] = (value, expires_at)

    def _sweep(self) -> None:
        now = self.clock()
        expired = [key for key, (_, expires_at) in self.entries.items() if expires_at <= now]
        for key in expired:
            del self.entries[key]

    async def remove(self, key: str) -> None:
        self.entries.pop(key, None)

    async def remove_by_prefix(self, prefix: str) -> int:
        keys = [key for key in self.entries if key.startswith(prefix)]
        for key in keys:
            del self.entries[key]
        return len(keys)
