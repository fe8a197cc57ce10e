"""Central test fixtures wiring repositories to the in-memory ports."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from stackvault.application.backend import InMemorySearchBackend
from stackvault.application.messaging import (
    InMemoryMessagePublisher,
    OutboundMessageQueue,
)
from stackvault.application.repository import (
    IndexDefinition,
    InMemoryCacheBackend,
    Repository,
    RepositoryConfig,
    RepositorySettings,
)
from stackvault.application.stacks import EventRepository, StackRepository
from tests.fixtures.documents import Project


@pytest.fixture
def backend() -> InMemorySearchBackend:
    """Create an in-memory search backend."""
    return InMemorySearchBackend()


@pytest.fixture
def cache() -> InMemoryCacheBackend:
    """Create an in-memory cache backend."""
    return InMemoryCacheBackend()


@pytest.fixture
def publisher() -> InMemoryMessagePublisher:
    """Create a publisher recording every delivered notification."""
    return InMemoryMessagePublisher()


@pytest_asyncio.fixture
async def queue(publisher: InMemoryMessagePublisher) -> AsyncIterator[OutboundMessageQueue]:
    """Create an outbound queue, cancelling leftover deliveries on teardown."""
    queue = OutboundMessageQueue(publisher)
    yield queue
    await queue.close()


@pytest.fixture
def settings() -> RepositorySettings:
    """Repository settings with a short publish delay to keep tests fast."""
    return RepositorySettings(counter_publish_delay_seconds=0.05)


@pytest.fixture
def config(
    backend: InMemorySearchBackend,
    cache: InMemoryCacheBackend,
    queue: OutboundMessageQueue,
    settings: RepositorySettings,
) -> RepositoryConfig:
    """Create a fully wired repository configuration."""
    return RepositoryConfig(
        backend=backend,
        cache_backend=cache,
        messages=queue,
        settings=settings,
    )


@pytest.fixture
def projects(config: RepositoryConfig) -> Repository[Project]:
    """Create a generic repository for organization-scoped projects."""
    return Repository(Project, IndexDefinition("projects"), config)


@pytest.fixture
def events(config: RepositoryConfig) -> EventRepository:
    """Create a repository for time-partitioned events."""
    return EventRepository(config)


@pytest.fixture
def stacks(config: RepositoryConfig, events: EventRepository) -> StackRepository:
    """Create a stack repository guarded by the event repository."""
    return StackRepository(config, events)
