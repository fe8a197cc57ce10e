"""Search backend port and its in-memory implementation.

This package provides:
- SearchBackend: Abstract port for the search/index store
- Request/response models exchanged with the backend
- InMemorySearchBackend: Process-local backend for tests and single-node use
"""

from .memory import InMemorySearchBackend
from .search import (
    AggregationResponse,
    BackendResponse,
    CountResponse,
    DocumentRef,
    GetResult,
    IndexOperation,
    Query,
    SearchBackend,
    SearchRequest,
    SearchResponse,
    UpdateResponse,
    UpdateScript,
    WriteResponse,
    expand_indices,
)

__all__ = [
    "SearchBackend",
    "InMemorySearchBackend",
    "Query",
    "UpdateScript",
    "DocumentRef",
    "IndexOperation",
    "SearchRequest",
    "BackendResponse",
    "SearchResponse",
    "GetResult",
    "CountResponse",
    "AggregationResponse",
    "UpdateResponse",
    "WriteResponse",
    "expand_indices",
]
