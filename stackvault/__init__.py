"""stackvault - Cache-augmented document repositories for error stacks.

This module provides the public API of the repository layer.
"""

from .application import (
    CacheBackend,
    ConnectionMapping,
    EventRepository,
    FindOptions,
    FindResults,
    InMemoryCacheBackend,
    InMemoryMessagePublisher,
    InMemorySearchBackend,
    MessagePublisher,
    OutboundMessageQueue,
    PagingOptions,
    ReadOnlyRepository,
    Repository,
    RepositoryConfig,
    RepositorySettings,
    SearchBackend,
    SortDirection,
    StackRepository,
)
from .domain import (
    BackendQueryError,
    ChangeRejectedError,
    ChangeType,
    Document,
    EntityChanged,
    IntegrityViolationError,
    PersistentEvent,
    RepositoryUsageError,
    ScopeKind,
    Stack,
)

__all__ = [
    # Repositories
    "ReadOnlyRepository",
    "Repository",
    "StackRepository",
    "EventRepository",
    "RepositoryConfig",
    "RepositorySettings",
    "FindOptions",
    "FindResults",
    "PagingOptions",
    "SortDirection",
    # Ports
    "SearchBackend",
    "InMemorySearchBackend",
    "CacheBackend",
    "InMemoryCacheBackend",
    "MessagePublisher",
    "InMemoryMessagePublisher",
    "OutboundMessageQueue",
    "ConnectionMapping",
    # Domain
    "Document",
    "ScopeKind",
    "Stack",
    "PersistentEvent",
    "ChangeType",
    "EntityChanged",
    "BackendQueryError",
    "ChangeRejectedError",
    "IntegrityViolationError",
    "RepositoryUsageError",
]
