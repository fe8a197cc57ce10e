"""Index routing for documents.

Time-partitioned collections keep one physical index per month. The month is
read from the creation time embedded in the document's ULID, which lets point
lookups go straight to the right partition without a broad search.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone

from ulid import ULID

from ...domain import EntityDescriptor

EPOCH_FLOOR = datetime(2000, 1, 1, tzinfo=timezone.utc)
"""Ids created at or before this instant are treated as implausible."""


@dataclass(frozen=True)
class IndexDefinition:
    """A logical index and its schema version.

    Examples:
        >>> IndexDefinition("events", version=2).versioned_name
        'events-v2'
    """

    name: str
    version: int = 1

    @property
    def versioned_name(self) -> str:
        return f"{self.name}-v{self.version}"


class ShardResolver(ABC):
    """Maps document ids to the physical index that holds them."""

    def __init__(self, index: IndexDefinition):
        self.index = index

    @staticmethod
    def for_entity(descriptor: EntityDescriptor, index: IndexDefinition) -> "ShardResolver":
        if descriptor.is_time_partitioned:
            return TimePartitionedResolver(index)
        return SingleIndexResolver(index)

    @abstractmethod
    def resolve(self, id: str) -> str | None:
        """Return the index holding ``id``, or None if it cannot be determined.

        A None result means the caller has to fall back to searching the
        default indices instead of a direct point lookup.
        """
        ...

    @abstractmethod
    def default_indices(self) -> list[str]:
        """Indices searched when a query does not name its own."""
        ...


class SingleIndexResolver(ShardResolver):
    def resolve(self, id: str) -> str | None:
        return self.index.versioned_name

    def default_indices(self) -> list[str]:
        return [self.index.versioned_name]


class TimePartitionedResolver(ShardResolver):
    def __init__(self, index: IndexDefinition, epoch_floor: datetime = EPOCH_FLOOR):
        super().__init__(index)
        self.epoch_floor = epoch_floor

    def partition_for(self, created: datetime) -> str:
        return f"{self.index.versioned_name}-{created:%Y%m}"

    def resolve(self, id: str) -> str | None:
        try:
            created = ULID.from_str(id).datetime
        except (ValueError, TypeError):
            return None

        if created <= self.epoch_floor:
            return None
        return self.partition_for(created)

    def default_indices(self) -> list[str]:
        return [f"{self.index.versioned_name}-*"]
