import asyncio
import copy
import logging
from collections import Counter, defaultdict
from collections.abc import Mapping
from typing import Any

from .matching import matches, project, sort_documents
from .search import (
    AggregationResponse,
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

LOGGER = logging.getLogger(__name__)


class InMemorySearchBackend(SearchBackend):
    """A search backend that keeps every index in process memory.

    This is not intended for production use. It supports the full backend
    contract, including optimistic versioning for scripted updates, and
    records how many times each operation was called so tests can assert on
    backend traffic. Documents are copied on the way in and out, so callers
    never share state with the store.

    Attributes:
        indices: Index name to ``{id: (version, source)}``.
        calls: Number of calls per operation name.
        failures: Operation name to (status, error) for injected failures.
    """

    def __init__(self) -> None:
        self.indices: dict[str, dict[str, tuple[int, dict[str, Any]]]] = defaultdict(dict)
        self.calls: Counter[str] = Counter()
        self.failures: dict[str, tuple[int, str]] = {}

    def inject_failure(self, operation: str, status: int = 500, error: str = "injected") -> None:
        """Make every following call to ``operation`` fail with ``status``."""
        self.failures[operation] = (status, error)

    def clear_failures(self) -> None:
        self.failures.clear()

    def source(self, index: str, id: str) -> dict[str, Any] | None:
        """Return a copy of a stored source, bypassing call tracking."""
        stored = self.indices.get(index, {}).get(id)
        return copy.deepcopy(stored[1]) if stored else None

    def _failure(self, operation: str) -> tuple[int, str] | None:
        self.calls[operation] += 1
        return self.failures.get(operation)

    def _matching(self, query: Query, indices: list[str]) -> list[dict[str, Any]]:
        names = expand_indices(indices, list(self.indices))
        return [
            source
            for name in names
            for _, source in self.indices[name].values()
            if matches(query, source)
        ]

    async def search(self, request: SearchRequest) -> SearchResponse:
        if failure := self._failure("search"):
            return SearchResponse(status=failure[0], error=failure[1])

        found = sort_documents(self._matching(request.query, request.indices), request.sort)
        page = found[request.skip : request.skip + request.limit]
        return SearchResponse(
            documents=[copy.deepcopy(project(doc, request.fields)) for doc in page],
            total=len(found),
        )

    async def get(self, index: str, id: str) -> GetResult:
        self.calls["get"] += 1
        stored = self.indices.get(index, {}).get(id)
        if stored is None:
            return GetResult(id=id, index=index)
        return GetResult(id=id, index=index, found=True, source=copy.deepcopy(stored[1]))

    async def multi_get(self, refs: list[DocumentRef]) -> list[GetResult]:
        self.calls["multi_get"] += 1
        results = []
        for ref in refs:
            stored = self.indices.get(ref.index, {}).get(ref.id)
            if stored is None:
                results.append(GetResult(id=ref.id, index=ref.index))
            else:
                results.append(
                    GetResult(
                        id=ref.id,
                        index=ref.index,
                        found=True,
                        source=copy.deepcopy(stored[1]),
                    )
                )
        return results

    async def count(self, query: Query, indices: list[str]) -> CountResponse:
        if failure := self._failure("count"):
            return CountResponse(status=failure[0], error=failure[1])
        return CountResponse(count=len(self._matching(query, indices)))

    async def aggregate(
        self, query: Query, indices: list[str], field: str, size: int
    ) -> AggregationResponse:
        if failure := self._failure("aggregate"):
            return AggregationResponse(status=failure[0], error=failure[1])

        terms: Counter[str] = Counter()
        for source in self._matching(query, indices):
            value = source.get(field)
            values = value if isinstance(value, list) else [value]
            terms.update(str(v) for v in values if v is not None)
        return AggregationResponse(buckets=dict(terms.most_common(size)))

    async def update(
        self,
        index: str,
        id: str,
        script: UpdateScript,
        params: Mapping[str, Any],
        retry_on_conflict: int = 0,
    ) -> UpdateResponse:
        if failure := self._failure("update"):
            return UpdateResponse(status=failure[0], error=failure[1])

        documents = self.indices.get(index, {})
        for attempt in range(1, retry_on_conflict + 2):
            stored = documents.get(id)
            if stored is None:
                return UpdateResponse(status=404, error="document missing", attempts=attempt)

            version, source = stored
            candidate = copy.deepcopy(source)
            # Yield as a network round trip would, so concurrent updates interleave.
            await asyncio.sleep(0)
            script(candidate, params)

            current = documents.get(id)
            if current is not None and current[0] == version:
                documents[id] = (version + 1, candidate)
                return UpdateResponse(attempts=attempt)

            LOGGER.debug(
                "Version conflict",
                extra={"index": index, "document_id": id, "attempt": attempt},
            )

        return UpdateResponse(
            status=409, error="version conflict", attempts=retry_on_conflict + 1
        )

    async def index_documents(self, operations: list[IndexOperation]) -> WriteResponse:
        if failure := self._failure("index_documents"):
            return WriteResponse(status=failure[0], error=failure[1])

        for operation in operations:
            documents = self.indices[operation.index]
            version = documents[operation.id][0] if operation.id in documents else 0
            documents[operation.id] = (version + 1, copy.deepcopy(operation.source))
        return WriteResponse(affected=len(operations))

    async def delete_documents(self, refs: list[DocumentRef]) -> WriteResponse:
        if failure := self._failure("delete_documents"):
            return WriteResponse(status=failure[0], error=failure[1])

        affected = 0
        for ref in refs:
            if self.indices.get(ref.index, {}).pop(ref.id, None) is not None:
                affected += 1
        return WriteResponse(affected=affected)

    async def delete_by_query(self, query: Query, indices: list[str]) -> WriteResponse:
        if failure := self._failure("delete_by_query"):
            return WriteResponse(status=failure[0], error=failure[1])

        affected = 0
        for name in expand_indices(indices, list(self.indices)):
            documents = self.indices[name]
            for id in [id for id, (_, source) in documents.items() if matches(query, source)]:
                del documents[id]
                affected += 1
        return WriteResponse(affected=affected)
