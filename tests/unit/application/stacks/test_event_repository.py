"""Tests for the event repository."""

import pytest

from stackvault.application.backend import InMemorySearchBackend
from stackvault.application.messaging import InMemoryMessagePublisher, OutboundMessageQueue
from stackvault.application.repository import PagingOptions, RepositoryConfig, RepositorySettings
from stackvault.application.stacks import EventRepository
from tests.fixtures.documents import make_event, make_stack, ulid_at, utc


@pytest.mark.asyncio
async def test_events_are_stored_in_monthly_partitions(
    events: EventRepository, backend: InMemorySearchBackend
):
    stack = make_stack()
    january = make_event(stack, id=ulid_at(utc(2024, 1, 31)))
    february = make_event(stack, id=ulid_at(utc(2024, 2, 1)))

    await events.add([january, february])

    assert sorted(backend.indices) == ["events-v1-202401", "events-v1-202402"]
    assert (await events.get_by_ids([january.id, february.id])).total == 2


@pytest.mark.asyncio
async def test_get_count_by_stack_id(events: EventRepository):
    stack, other = make_stack(), make_stack()
    await events.add(
        [
            make_event(stack),
            make_event(stack, id=ulid_at(utc(2023, 6, 1))),
            make_event(stack, is_deleted=True),
            make_event(other),
        ]
    )

    assert await events.get_count_by_stack_id(stack.id) == 2
    assert await events.get_count_by_stack_id("none") == 0


@pytest.mark.asyncio
async def test_get_by_stack_id_newest_first(events: EventRepository):
    stack = make_stack()
    dates = [utc(2024, 3, 1), utc(2024, 3, 3), utc(2024, 3, 2)]
    await events.add([make_event(stack, date=date) for date in dates])

    page = await events.get_by_stack_id(stack.id, PagingOptions(page=1, limit=2))

    assert [event.date for event in page.documents] == [utc(2024, 3, 3), utc(2024, 3, 2)]
    assert page.total == 3
    assert page.has_more


@pytest.mark.asyncio
async def test_remove_all_by_stack_ids_in_batches(
    backend: InMemorySearchBackend,
    queue: OutboundMessageQueue,
    publisher: InMemoryMessagePublisher,
):
    config = RepositoryConfig(
        backend=backend, messages=queue, settings=RepositorySettings(max_limit=2)
    )
    events = EventRepository(config)
    stack, kept = make_stack(), make_stack()
    await events.add(
        [
            make_event(stack),
            make_event(stack),
            make_event(stack, is_deleted=True),
            make_event(stack, id=ulid_at(utc(2022, 5, 5))),
            make_event(kept),
        ],
        send_notification=False,
    )

    removed = await events.remove_all_by_stack_ids([stack.id])
    await queue.drain()

    assert removed == 4
    assert backend.calls["delete_documents"] == 2
    assert await events.count() == 1
    assert publisher.messages == []


@pytest.mark.asyncio
async def test_remove_all_by_no_stack_ids(events: EventRepository, backend: InMemorySearchBackend):
    assert await events.remove_all_by_stack_ids([]) == 0
    assert backend.calls["search"] == 0
