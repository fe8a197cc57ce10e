"""MongoDB integration for stackvault.

This package provides:
- MongoConfiguration: Connection settings and lazy client factory
- MongoSearchBackend: Search backend storing each index as a collection
- MongoCacheBackend: Cache backend with TTL-based expiry
"""

from .backend import MongoSearchBackend
from .cache import MongoCacheBackend
from .collection import IndexDirection, IndexedCollection, IndexSpec
from .config import MongoConfiguration

__all__ = [
    "MongoConfiguration",
    "MongoSearchBackend",
    "MongoCacheBackend",
    "IndexDirection",
    "IndexSpec",
    "IndexedCollection",
]
