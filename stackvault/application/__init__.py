"""Application layer: repositories and their collaborators."""

from .backend import InMemorySearchBackend, SearchBackend
from .connections import ConnectionMapping
from .messaging import InMemoryMessagePublisher, MessagePublisher, OutboundMessageQueue
from .repository import (
    CacheBackend,
    FindOptions,
    FindResults,
    InMemoryCacheBackend,
    PagingOptions,
    ReadOnlyRepository,
    Repository,
    RepositoryConfig,
    RepositorySettings,
    SortDirection,
)
from .stacks import EventRepository, StackRepository

__all__ = [
    "SearchBackend",
    "InMemorySearchBackend",
    "CacheBackend",
    "InMemoryCacheBackend",
    "MessagePublisher",
    "InMemoryMessagePublisher",
    "OutboundMessageQueue",
    "ReadOnlyRepository",
    "Repository",
    "RepositoryConfig",
    "RepositorySettings",
    "FindOptions",
    "FindResults",
    "PagingOptions",
    "SortDirection",
    "StackRepository",
    "EventRepository",
    "ConnectionMapping",
]
