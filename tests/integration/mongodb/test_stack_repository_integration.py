"""End-to-end stack repository tests against MongoDB."""

import asyncio

import pytest

from stackvault.application.messaging import InMemoryMessagePublisher, OutboundMessageQueue
from stackvault.application.repository import RepositoryConfig, RepositorySettings
from stackvault.application.stacks import EventRepository, StackRepository
from stackvault.domain import IntegrityViolationError
from stackvault.integrations.mongodb import MongoCacheBackend, MongoSearchBackend
from tests.fixtures.documents import make_event, make_stack, ulid_at, utc


@pytest.fixture
def publisher() -> InMemoryMessagePublisher:
    return InMemoryMessagePublisher()


@pytest.fixture
def repositories(
    mongo_backend: MongoSearchBackend,
    mongo_cache: MongoCacheBackend,
    publisher: InMemoryMessagePublisher,
) -> tuple[StackRepository, EventRepository, OutboundMessageQueue]:
    queue = OutboundMessageQueue(publisher)
    config = RepositoryConfig(
        backend=mongo_backend,
        cache_backend=mongo_cache,
        messages=queue,
        settings=RepositorySettings(counter_publish_delay_seconds=0.05, counter_update_retries=10),
    )
    events = EventRepository(config)
    return StackRepository(config, events), events, queue


@pytest.mark.integration
@pytest.mark.asyncio
async def test_stack_lifecycle(repositories, publisher: InMemoryMessagePublisher):
    stacks, events, queue = repositories
    stack = make_stack()
    await stacks.add(stack, add_to_cache=True)

    assert await stacks.get_by_signature_hash("project-1", "sig-1") == stack

    results = await asyncio.gather(
        stacks.increment_event_counter(
            "org-1", "project-1", stack.id, utc(2024, 3, 2), utc(2024, 3, 4), 5
        ),
        stacks.increment_event_counter(
            "org-1", "project-1", stack.id, utc(2024, 3, 1), utc(2024, 3, 3), 7
        ),
    )
    stored = await stacks.get_by_id(stack.id, use_cache=True)

    assert results == [True, True]
    assert stored.total_occurrences == 12
    assert stored.first_occurrence == utc(2024, 3, 1)
    assert stored.last_occurrence == utc(2024, 3, 4)

    event = make_event(stack, id=ulid_at(utc(2024, 3, 1)))
    await events.add(event)
    with pytest.raises(IntegrityViolationError):
        await stacks.remove(stack)

    await events.remove_all_by_stack_ids([stack.id])
    await stacks.remove(stack)
    await queue.drain()

    assert await stacks.get_by_id(stack.id) is None
    assert [message.change_type.value for message in publisher.messages].count("Saved") == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_events_route_to_monthly_collections(repositories, mongo_backend: MongoSearchBackend):
    _, events, queue = repositories
    stack = make_stack()
    january = make_event(stack, id=ulid_at(utc(2024, 1, 15)), date=utc(2024, 1, 15))
    march = make_event(stack, id=ulid_at(utc(2024, 3, 15)), date=utc(2024, 3, 15))

    await events.add([january, march], send_notification=False)

    names = await mongo_backend.config.db.list_collection_names()
    assert {"events-v1-202401", "events-v1-202403"} <= set(names)
    assert await events.get_count_by_stack_id(stack.id) == 2
    assert await events.get_by_id(march.id) == march
    await queue.close()
