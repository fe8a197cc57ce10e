"""Repository infrastructure for document persistence and caching.

This package provides:
- ReadOnlyRepository / Repository: Cache-augmented reads and notifying writes
- Cache backends and the scoped cache key convention
- Shard resolvers routing ids to physical indices
- Query options, results, settings and change hooks
"""

from .cache import (
    CacheBackend,
    CacheValue,
    InMemoryCacheBackend,
    NullCacheBackend,
    scoped_cache_key,
)
from .config import RepositoryConfig, RepositorySettings
from .notifications import (
    ChangeObserver,
    ChangeValidator,
    DocumentChange,
    ValidationResult,
)
from .options import (
    FindOptions,
    FindResults,
    PagingOptions,
    SortDirection,
    SortField,
)
from .read import ReadOnlyRepository
from .repository import Repository
from .sharding import (
    EPOCH_FLOOR,
    IndexDefinition,
    ShardResolver,
    SingleIndexResolver,
    TimePartitionedResolver,
)

__all__ = [
    # Core repositories
    "ReadOnlyRepository",
    "Repository",
    "RepositoryConfig",
    "RepositorySettings",
    # Cache infrastructure
    "CacheBackend",
    "CacheValue",
    "NullCacheBackend",
    "InMemoryCacheBackend",
    "scoped_cache_key",
    # Index routing
    "IndexDefinition",
    "ShardResolver",
    "SingleIndexResolver",
    "TimePartitionedResolver",
    "EPOCH_FLOOR",
    # Queries
    "FindOptions",
    "FindResults",
    "PagingOptions",
    "SortDirection",
    "SortField",
    # Change hooks
    "DocumentChange",
    "ValidationResult",
    "ChangeValidator",
    "ChangeObserver",
]
