"""Configuration for repositories."""

from dataclasses import dataclass, field
from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings

from ..backend import SearchBackend
from ..messaging import OutboundMessageQueue
from .cache import CacheBackend
from .options import DEFAULT_LIMIT, MAX_LIMIT


class RepositorySettings(BaseSettings):
    """Process-wide repository settings, built once at startup.

    All settings can be configured via environment variables with the
    STACKVAULT_ prefix. For example:
    - STACKVAULT_ENABLE_CACHE=false
    - STACKVAULT_DEFAULT_CACHE_EXPIRATION_SECONDS=60

    The settings object is immutable; build a new one to change behavior.

    Attributes:
        enable_cache: Master switch for read-through caching.
        default_cache_expiration_seconds: Lifetime of cache entries written
            without an explicit expiration.
        stacking_version: Suffix of stack signature cache keys. Changing it
            orphans every signature entry written under the previous version.
        counter_update_retries: Conflict retries for occurrence increments.
        counter_publish_delay_seconds: Delay applied to change notifications
            emitted by occurrence increments, so bursts coalesce.
        default_limit: Page size used when a query requests none.
        max_limit: Upper bound on any requested page size.
        aggregation_bucket_limit: Number of buckets returned by simple
            term aggregations.
    """

    enable_cache: bool = True
    default_cache_expiration_seconds: int = Field(default=300, ge=1)
    stacking_version: str = "v2"
    counter_update_retries: int = Field(default=3, ge=0)
    counter_publish_delay_seconds: float = Field(default=1.5, ge=0)
    default_limit: int = Field(default=DEFAULT_LIMIT, ge=1)
    max_limit: int = Field(default=MAX_LIMIT, ge=1)
    aggregation_bucket_limit: int = Field(default=10, ge=1)

    model_config = {"env_prefix": "STACKVAULT_", "frozen": True}

    @property
    def default_cache_expiration(self) -> timedelta:
        return timedelta(seconds=self.default_cache_expiration_seconds)

    @property
    def counter_publish_delay(self) -> timedelta:
        return timedelta(seconds=self.counter_publish_delay_seconds)


@dataclass
class RepositoryConfig:
    """Collaborators shared by the repositories of one process.

    Each optional collaborator defaults to a form that disables the
    corresponding behavior: a null cache and no outbound queue.

    Attributes:
        backend: Search backend holding the documents.
        cache_backend: Backend for read-through caching.
        messages: Queue receiving outbound change notifications.
        settings: Process-wide repository settings.

    Examples:
        Uncached, silent repositories:

        >>> config = RepositoryConfig(backend=InMemorySearchBackend())

        Fully wired:

        >>> config = RepositoryConfig(
        ...     backend=MongoSearchBackend(mongo),
        ...     cache_backend=MongoCacheBackend(mongo),
        ...     messages=OutboundMessageQueue(publisher),
        ...     settings=RepositorySettings(default_cache_expiration_seconds=60),
        ... )
    """

    backend: SearchBackend
    cache_backend: CacheBackend = field(default_factory=CacheBackend.null)
    messages: OutboundMessageQueue | None = None
    settings: RepositorySettings = field(default_factory=RepositorySettings)
