"""Integration tests for MongoSearchBackend."""

import asyncio

import pytest

from stackvault.application.backend import DocumentRef, IndexOperation, SearchRequest
from stackvault.integrations.mongodb import MongoSearchBackend


def add_count(source, params):
    source["total"] = source.get("total", 0) + params["count"]


async def seed(backend: MongoSearchBackend) -> None:
    response = await backend.index_documents(
        [
            IndexOperation("events-v1-202401", "e1", {"id": "e1", "stack_id": "s1", "n": 3}),
            IndexOperation("events-v1-202402", "e2", {"id": "e2", "stack_id": "s1", "n": 1}),
            IndexOperation("events-v1-202402", "e3", {"id": "e3", "stack_id": "s2", "n": 2}),
            IndexOperation("stacks-v1", "s1", {"id": "s1", "tags": ["a", "b"], "total": 0}),
        ]
    )
    assert response.affected == 4


@pytest.mark.integration
@pytest.mark.asyncio
async def test_get_and_multi_get(mongo_backend: MongoSearchBackend):
    await seed(mongo_backend)

    single = await mongo_backend.get("stacks-v1", "s1")
    batch = await mongo_backend.multi_get(
        [DocumentRef("e3", "events-v1-202402"), DocumentRef("e1", "events-v1-202402")]
    )

    assert single.found
    assert single.source == {"id": "s1", "tags": ["a", "b"], "total": 0}
    assert [(result.id, result.found) for result in batch] == [("e3", True), ("e1", False)]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_search_merges_partitions(mongo_backend: MongoSearchBackend):
    await seed(mongo_backend)

    response = await mongo_backend.search(
        SearchRequest(indices=["events-v1-*"], sort=[("n", -1)], skip=1, limit=1, fields=["n"])
    )

    assert response.total == 3
    assert response.documents == [{"id": "e3", "n": 2}]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_search_single_collection(mongo_backend: MongoSearchBackend):
    await seed(mongo_backend)

    response = await mongo_backend.search(
        SearchRequest(query={"stack_id": "s1"}, indices=["events-v1-202402", "missing-v1"])
    )

    assert response.total == 1
    assert response.documents == [{"id": "e2", "stack_id": "s1", "n": 1}]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_count_and_aggregate(mongo_backend: MongoSearchBackend):
    await seed(mongo_backend)

    count = await mongo_backend.count({"n": {"$gte": 2}}, ["events-v1-*"])
    aggregation = await mongo_backend.aggregate({}, ["events-v1-*"], "stack_id", 10)
    tags = await mongo_backend.aggregate({}, ["stacks-v1"], "tags", 10)

    assert count.count == 2
    assert aggregation.buckets == {"s1": 2, "s2": 1}
    assert tags.buckets == {"a": 1, "b": 1}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_concurrent_scripted_updates(mongo_backend: MongoSearchBackend):
    await seed(mongo_backend)

    responses = await asyncio.gather(
        *(
            mongo_backend.update("stacks-v1", "s1", add_count, {"count": 2}, retry_on_conflict=10)
            for _ in range(5)
        )
    )

    assert all(response.is_valid for response in responses)
    assert (await mongo_backend.get("stacks-v1", "s1")).source["total"] == 10


@pytest.mark.integration
@pytest.mark.asyncio
async def test_update_missing_document(mongo_backend: MongoSearchBackend):
    response = await mongo_backend.update("stacks-v1", "missing", add_count, {"count": 1})

    assert response.status == 404


@pytest.mark.integration
@pytest.mark.asyncio
async def test_deletes(mongo_backend: MongoSearchBackend):
    await seed(mongo_backend)

    deleted = await mongo_backend.delete_documents([DocumentRef("e1", "events-v1-202401")])
    purged = await mongo_backend.delete_by_query({"stack_id": "s1"}, ["events-v1-*"])

    assert deleted.affected == 1
    assert purged.affected == 1
    assert (await mongo_backend.count({}, ["events-v1-*"])).count == 1
