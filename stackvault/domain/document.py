from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field
from ulid import ULID


def new_id() -> str:
    """Generate a new document identifier.

    Identifiers are ULID strings, so the creation time of every document is
    embedded in its id and can be used to route it to a time partition.
    """
    return str(ULID())


class ScopeKind(str, Enum):
    """Ownership scope of a multi-tenant document type."""

    NONE = "none"
    ORGANIZATION = "organization"
    ORGANIZATION_AND_PROJECT = "organization_and_project"

    @property
    def has_organization(self) -> bool:
        return self is not ScopeKind.NONE

    @property
    def has_project(self) -> bool:
        return self is ScopeKind.ORGANIZATION_AND_PROJECT


_SCOPE_ORDER = [
    ScopeKind.NONE,
    ScopeKind.ORGANIZATION,
    ScopeKind.ORGANIZATION_AND_PROJECT,
]


@dataclass(frozen=True)
class EntityDescriptor:
    """Capabilities of a document type, resolved once when the class is defined.

    Attributes:
        type_name: Name used to scope cache keys and tag change events.
        supports_soft_delete: Documents carry an ``is_deleted`` flag and are
            excluded from queries while it is set.
        is_time_partitioned: Documents live in monthly partitions derived
            from the creation time embedded in their id.
        scope: Ownership scope of the type.
    """

    type_name: str
    supports_soft_delete: bool = False
    is_time_partitioned: bool = False
    scope: ScopeKind = ScopeKind.NONE


class Document(BaseModel):
    """Base class for every document stored through a repository.

    Subclasses declare their capabilities as class keyword arguments. The
    resulting :class:`EntityDescriptor` is inherited unless overridden.

    Examples:
        >>> class Project(Document, scope=ScopeKind.ORGANIZATION):
        ...     name: str = ""
        >>> Project.descriptor.type_name
        'project'
    """

    id: str = Field(default_factory=new_id)

    descriptor: ClassVar[EntityDescriptor] = EntityDescriptor(type_name="document")

    def __init_subclass__(
        cls,
        *,
        type_name: str | None = None,
        supports_soft_delete: bool | None = None,
        is_time_partitioned: bool | None = None,
        scope: ScopeKind | None = None,
        **kwargs: object,
    ) -> None:
        super().__init_subclass__(**kwargs)  # type: ignore[arg-type]
        # Capabilities of every document base are merged so that mixins
        # such as SoftDeletable compose with the ownership bases.
        parents = [
            base.descriptor for base in cls.__bases__ if issubclass(base, Document)
        ]
        if supports_soft_delete is None:
            supports_soft_delete = any(p.supports_soft_delete for p in parents)
        if is_time_partitioned is None:
            is_time_partitioned = any(p.is_time_partitioned for p in parents)
        if scope is None:
            scopes = [p.scope for p in parents]
            scope = max(scopes, key=_SCOPE_ORDER.index, default=ScopeKind.NONE)

        cls.descriptor = EntityDescriptor(
            type_name=type_name or cls.__name__.lower(),
            supports_soft_delete=supports_soft_delete,
            is_time_partitioned=is_time_partitioned,
            scope=scope,
        )


class SoftDeletable(Document, supports_soft_delete=True):
    is_deleted: bool = False


class OwnedByOrganization(Document, scope=ScopeKind.ORGANIZATION):
    organization_id: str = ""


class OwnedByOrganizationAndProject(
    OwnedByOrganization, scope=ScopeKind.ORGANIZATION_AND_PROJECT
):
    project_id: str = ""
