"""MongoDB implementation of the search backend.

Every index is a collection of the same name. Documents are stored with
``_id`` set to the document id and a ``_version`` counter that scripted
updates use for optimistic concurrency control.
"""

import logging
from collections import Counter, defaultdict
from collections.abc import Mapping
from typing import Any

from pymongo import UpdateOne
from pymongo.errors import PyMongoError

from stackvault.application.backend import (
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
from stackvault.application.backend.matching import sort_documents

from .config import MongoConfiguration

LOGGER = logging.getLogger(__name__)

_INTERNAL_FIELDS = ("_id", "_version")


def _to_source(document: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in document.items() if key not in _INTERNAL_FIELDS}


def _projection(fields: list[str]) -> dict[str, int]:
    if not fields:
        return {"_id": 0, "_version": 0}
    projection = {field: 1 for field in ["id", *fields]}
    projection["_id"] = 0
    return projection


class MongoSearchBackend(SearchBackend):
    """MongoDB implementation of the SearchBackend interface.

    Searches spanning several collections query each one and merge the
    results in process, so paging across many partitions reads up to
    ``skip + limit`` documents per partition. Driver errors are reported as
    invalid responses with status 500.

    Examples:
        >>> config = MongoConfiguration(uri="mongodb://localhost:27017")
        >>> backend = MongoSearchBackend(config)
        >>> response = await backend.search(
        ...     SearchRequest(query={"project_id": "p1"}, indices=["stacks-v1"])
        ... )
    """

    def __init__(self, config: MongoConfiguration):
        self.config = config

    async def _collections(self, indices: list[str]) -> list[str]:
        existing = await self.config.db.list_collection_names()
        return expand_indices(indices, sorted(existing))

    async def search(self, request: SearchRequest) -> SearchResponse:
        try:
            names = await self._collections(request.indices)
            total = 0
            documents: list[dict[str, Any]] = []
            # A single collection pages natively; several are merged here.
            skip = request.skip if len(names) == 1 else 0
            window = request.limit if len(names) == 1 else request.skip + request.limit

            for name in names:
                collection = self.config.index(name)
                total += await collection.count_documents(request.query)
                cursor = collection.find(request.query, projection=_projection(request.fields))
                if request.sort:
                    cursor = cursor.sort(request.sort)
                cursor = cursor.skip(skip).limit(window)
                async for document in cursor:
                    documents.append(document)
        except PyMongoError as e:
            return SearchResponse(status=500, error=str(e))

        if len(names) > 1:
            documents = sort_documents(documents, request.sort)
            documents = documents[request.skip : request.skip + request.limit]
        return SearchResponse(documents=documents, total=total)

    async def get(self, index: str, id: str) -> GetResult:
        try:
            document = await self.config.index(index).find_one({"_id": id})
        except PyMongoError as e:
            return GetResult(id=id, index=index, status=500, error=str(e))
        if document is None:
            return GetResult(id=id, index=index)
        return GetResult(id=id, index=index, found=True, source=_to_source(document))

    async def multi_get(self, refs: list[DocumentRef]) -> list[GetResult]:
        by_index: dict[str, list[str]] = defaultdict(list)
        for ref in refs:
            by_index[ref.index].append(ref.id)

        found: dict[DocumentRef, dict[str, Any]] = {}
        try:
            for index, ids in by_index.items():
                async for document in self.config.index(index).find({"_id": {"$in": ids}}):
                    found[DocumentRef(document["_id"], index)] = _to_source(document)
        except PyMongoError as e:
            return [
                GetResult(id=ref.id, index=ref.index, status=500, error=str(e)) for ref in refs
            ]

        return [
            GetResult(id=ref.id, index=ref.index, found=ref in found, source=found.get(ref))
            for ref in refs
        ]

    async def count(self, query: Query, indices: list[str]) -> CountResponse:
        try:
            count = 0
            for name in await self._collections(indices):
                count += await self.config.index(name).count_documents(query)
        except PyMongoError as e:
            return CountResponse(status=500, error=str(e))
        return CountResponse(count=count)

    async def aggregate(
        self, query: Query, indices: list[str], field: str, size: int
    ) -> AggregationResponse:
        pipeline: list[dict[str, Any]] = [
            {"$match": query},
            {"$unwind": {"path": f"${field}", "preserveNullAndEmptyArrays": False}},
            {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
            {"$limit": size},
        ]
        terms: Counter[str] = Counter()
        try:
            for name in await self._collections(indices):
                cursor = await self.config.index(name).aggregate(pipeline)
                async for bucket in cursor:
                    terms[str(bucket["_id"])] += bucket["count"]
        except PyMongoError as e:
            return AggregationResponse(status=500, error=str(e))
        return AggregationResponse(buckets=dict(terms.most_common(size)))

    async def update(
        self,
        index: str,
        id: str,
        script: UpdateScript,
        params: Mapping[str, Any],
        retry_on_conflict: int = 0,
    ) -> UpdateResponse:
        collection = self.config.index(index)
        try:
            for attempt in range(1, retry_on_conflict + 2):
                document = await collection.find_one({"_id": id})
                if document is None:
                    return UpdateResponse(status=404, error="document missing", attempts=attempt)

                version = document.get("_version")
                source = _to_source(document)
                script(source, params)

                expected = {"$exists": False} if version is None else version
                result = await collection.replace_one(
                    {"_id": id, "_version": expected},
                    {**source, "_id": id, "_version": (version or 0) + 1},
                )
                if result.matched_count:
                    return UpdateResponse(attempts=attempt)

                LOGGER.debug(
                    "Version conflict",
                    extra={"index": index, "document_id": id, "attempt": attempt},
                )
        except PyMongoError as e:
            return UpdateResponse(status=500, error=str(e))

        return UpdateResponse(
            status=409, error="version conflict", attempts=retry_on_conflict + 1
        )

    async def index_documents(self, operations: list[IndexOperation]) -> WriteResponse:
        by_index: dict[str, list[UpdateOne]] = defaultdict(list)
        for operation in operations:
            by_index[operation.index].append(
                UpdateOne(
                    {"_id": operation.id},
                    {"$set": operation.source, "$inc": {"_version": 1}},
                    upsert=True,
                )
            )

        affected = 0
        try:
            for index, requests in by_index.items():
                result = await self.config.index(index).bulk_write(requests)
                affected += result.upserted_count + result.matched_count
        except PyMongoError as e:
            return WriteResponse(status=500, error=str(e))
        return WriteResponse(affected=affected)

    async def delete_documents(self, refs: list[DocumentRef]) -> WriteResponse:
        by_index: dict[str, list[str]] = defaultdict(list)
        for ref in refs:
            by_index[ref.index].append(ref.id)

        affected = 0
        try:
            for index, ids in by_index.items():
                result = await self.config.index(index).delete_many({"_id": {"$in": ids}})
                affected += result.deleted_count
        except PyMongoError as e:
            return WriteResponse(status=500, error=str(e))
        return WriteResponse(affected=affected)

    async def delete_by_query(self, query: Query, indices: list[str]) -> WriteResponse:
        affected = 0
        try:
            for name in await self._collections(indices):
                result = await self.config.index(name).delete_many(query)
                affected += result.deleted_count
        except PyMongoError as e:
            return WriteResponse(status=500, error=str(e))
        return WriteResponse(affected=affected)
