"""Search backend port.

The repository layer treats the search/index backend as an opaque store that
executes filter queries against named indices and reports a status with every
response. Queries are MongoDB-style filter documents; index names passed to
search operations may contain ``*`` wildcards that the backend expands against
the indices it holds.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from fnmatch import fnmatchcase
from typing import Any, NamedTuple

from pydantic import BaseModel, Field

Query = dict[str, Any]
"""A MongoDB-style filter document."""

UpdateScript = Callable[[dict[str, Any], Mapping[str, Any]], None]
"""A script applied to a stored document source, mutating it in place."""


class DocumentRef(NamedTuple):
    id: str
    index: str


class IndexOperation(NamedTuple):
    index: str
    id: str
    source: dict[str, Any]


class SearchRequest(BaseModel):
    """Parameters of a single search call.

    Attributes:
        query: Filter document every returned document must match.
        indices: Index names or wildcard patterns to search.
        fields: Fields to return. Empty means the whole source.
        sort: (field, direction) pairs, direction 1 ascending, -1 descending.
        limit: Maximum number of documents to return.
        skip: Number of matching documents to skip.
    """

    query: Query = Field(default_factory=dict)
    indices: list[str] = Field(default_factory=list)
    fields: list[str] = Field(default_factory=list)
    sort: list[tuple[str, int]] = Field(default_factory=list)
    limit: int = 10
    skip: int = 0


class BackendResponse(BaseModel):
    status: int = 200
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return 200 <= self.status < 300


class SearchResponse(BackendResponse):
    documents: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0


class GetResult(BackendResponse):
    id: str
    index: str
    found: bool = False
    source: dict[str, Any] | None = None


class CountResponse(BackendResponse):
    count: int = 0


class AggregationResponse(BackendResponse):
    buckets: dict[str, int] = Field(default_factory=dict)


class UpdateResponse(BackendResponse):
    attempts: int = 0


class WriteResponse(BackendResponse):
    affected: int = 0


class SearchBackend(ABC):
    """Mechanism for storing and querying documents in named indices.

    Point lookups that find nothing are reported through ``GetResult.found``
    rather than an error status. Every other failure is reported through the
    response status so the caller decides how to surface it.
    """

    @abstractmethod
    async def search(self, request: SearchRequest) -> SearchResponse: ...

    @abstractmethod
    async def get(self, index: str, id: str) -> GetResult: ...

    @abstractmethod
    async def multi_get(self, refs: list[DocumentRef]) -> list[GetResult]:
        """Fetch several documents by id in a single round trip."""
        ...

    @abstractmethod
    async def count(self, query: Query, indices: list[str]) -> CountResponse: ...

    @abstractmethod
    async def aggregate(
        self, query: Query, indices: list[str], field: str, size: int
    ) -> AggregationResponse:
        """Count matching documents per distinct value of ``field``.

        Only the ``size`` most frequent values are returned.
        """
        ...

    @abstractmethod
    async def update(
        self,
        index: str,
        id: str,
        script: UpdateScript,
        params: Mapping[str, Any],
        retry_on_conflict: int = 0,
    ) -> UpdateResponse:
        """Apply ``script`` to a stored document under optimistic concurrency.

        The script runs against the current source and the result is written
        only if the document has not changed in the meantime. On a version
        conflict the read/apply/write cycle is retried up to
        ``retry_on_conflict`` more times before a 409 status is returned.
        A missing document yields a 404 status.
        """
        ...

    @abstractmethod
    async def index_documents(self, operations: list[IndexOperation]) -> WriteResponse:
        """Create or fully replace the given documents."""
        ...

    @abstractmethod
    async def delete_documents(self, refs: list[DocumentRef]) -> WriteResponse: ...

    @abstractmethod
    async def delete_by_query(self, query: Query, indices: list[str]) -> WriteResponse: ...


def expand_indices(patterns: Iterable[str], existing: Iterable[str]) -> list[str]:
    """Resolve index names and ``*`` patterns against the existing indices.

    Plain names that do not exist are dropped, mirroring a search that
    ignores unavailable indices. The result keeps the order of ``existing``.
    """
    patterns = list(patterns)
    return [
        name
        for name in existing
        if any(fnmatchcase(name, pattern) for pattern in patterns)
    ]
