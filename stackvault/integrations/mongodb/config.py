"""MongoDB configuration using pydantic-settings."""

from functools import cached_property
from typing import Any

from pydantic_settings import BaseSettings
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.asynchronous.mongo_client import AsyncMongoClient


class MongoConfiguration(BaseSettings):
    """Configuration and factory for MongoDB resources.

    All settings can be configured via environment variables with the
    STACKVAULT_MONGO_ prefix. For example:
    - STACKVAULT_MONGO_URI=mongodb://localhost:27017
    - STACKVAULT_MONGO_DATABASE=errors

    The configuration also acts as a factory, providing lazy-initialized
    properties for the MongoDB client, database and cache collection. Every
    search index is stored as a collection of the same name in ``database``.

    Attributes:
        uri: MongoDB connection URI.
        database: Database name to use.
        cache_collection: Collection name for cache entries.
        server_selection_timeout_ms: How long to wait for a reachable server.

    Example:
        >>> config = MongoConfiguration()
        >>> backend = MongoSearchBackend(config)
        >>> cache = MongoCacheBackend(config)
        >>> ...
        >>> await config.on_shutdown()
    """

    uri: str = "mongodb://localhost:27017"
    database: str = "stackvault"
    cache_collection: str = "cache"
    server_selection_timeout_ms: int = 30000

    model_config = {"env_prefix": "STACKVAULT_MONGO_"}

    @cached_property
    def client(self) -> AsyncMongoClient[dict[str, Any]]:
        """Get the MongoDB async client.

        The client is lazily created and cached for reuse. Datetimes are
        returned timezone aware (UTC) so they compare with application values.
        """
        return AsyncMongoClient(
            self.uri,
            tz_aware=True,
            serverSelectionTimeoutMS=self.server_selection_timeout_ms,
        )

    @cached_property
    def db(self) -> AsyncDatabase[dict[str, Any]]:
        """Get the MongoDB async database."""
        return self.client[self.database]

    @cached_property
    def cache(self) -> AsyncCollection[dict[str, Any]]:
        """Get the cache collection."""
        return self.db[self.cache_collection]

    def index(self, name: str) -> AsyncCollection[dict[str, Any]]:
        """Get the collection backing a search index."""
        return self.db[name]

    async def on_startup(self) -> None:
        """Called when the host process starts.

        No-op for MongoDB - connections are established lazily.
        """
        pass

    async def on_shutdown(self) -> None:
        """Close the MongoDB client connection if it was created."""
        if "client" in self.__dict__:
            await self.client.close()
