"""Domain model for the document repository layer.

- Document: Base class carrying the entity capability descriptor
- Stack / PersistentEvent: Error groups and their stored occurrences
- EntityChanged: Outbound change notification
- Exceptions raised by repositories
"""

from .changes import ChangeType, EntityChanged
from .document import (
    Document,
    EntityDescriptor,
    OwnedByOrganization,
    OwnedByOrganizationAndProject,
    ScopeKind,
    SoftDeletable,
    new_id,
)
from .exceptions import (
    BackendQueryError,
    ChangeRejectedError,
    IntegrityViolationError,
    RepositoryUsageError,
)
from .stack import PersistentEvent, Stack, UtcDateTime, as_utc, utc_now

__all__ = [
    "Document",
    "EntityDescriptor",
    "ScopeKind",
    "SoftDeletable",
    "OwnedByOrganization",
    "OwnedByOrganizationAndProject",
    "new_id",
    "Stack",
    "PersistentEvent",
    "UtcDateTime",
    "as_utc",
    "utc_now",
    "ChangeType",
    "EntityChanged",
    "BackendQueryError",
    "ChangeRejectedError",
    "IntegrityViolationError",
    "RepositoryUsageError",
]
