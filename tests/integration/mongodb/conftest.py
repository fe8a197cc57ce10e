"""Pytest fixtures for MongoDB integration tests.

A MongoDB container is started once per session. Set STACKVAULT_MONGO_URI to
run against an existing server instead.
"""

import os
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from testcontainers.mongodb import MongoDbContainer

from stackvault.integrations.mongodb import (
    MongoCacheBackend,
    MongoConfiguration,
    MongoSearchBackend,
)


@pytest.fixture(scope="session")
def mongo_uri() -> Iterator[str]:
    """Start MongoDB container for tests, unless a server is configured."""
    if uri := os.environ.get("STACKVAULT_MONGO_URI"):
        yield uri
        return

    with MongoDbContainer("mongo:7") as container:
        yield container.get_connection_url()


@asynccontextmanager
async def create_config(
    request: pytest.FixtureRequest, uri: str, prefix: str = "test"
) -> AsyncIterator[MongoConfiguration]:
    """Create a MongoConfiguration on a fresh database, dropped before use."""
    db_name = f"{prefix}_{request.node.name}"[:63]
    config = MongoConfiguration(uri=uri, database=db_name, server_selection_timeout_ms=5000)
    await config.client.drop_database(config.database)
    try:
        yield config
    finally:
        await config.on_shutdown()


@pytest_asyncio.fixture
async def mongo_config(
    request: pytest.FixtureRequest, mongo_uri: str
) -> AsyncIterator[MongoConfiguration]:
    """Create a MongoConfiguration pointing to the test server."""
    async with create_config(request, mongo_uri) as config:
        yield config


@pytest.fixture
def mongo_backend(mongo_config: MongoConfiguration) -> MongoSearchBackend:
    return MongoSearchBackend(mongo_config)


@pytest.fixture
def mongo_cache(mongo_config: MongoConfiguration) -> MongoCacheBackend:
    return MongoCacheBackend(mongo_config)
