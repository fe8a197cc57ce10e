"""Query options and result containers for repository reads."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from ...domain import Document
from ..backend import Query

D = TypeVar("D", bound=Document)

DEFAULT_LIMIT = 10
MAX_LIMIT = 1000


class SortDirection(IntEnum):
    """Sort direction for query results."""

    ASC = 1
    """Ascending order (1)."""

    DESC = -1
    """Descending order (-1)."""


@dataclass(frozen=True)
class SortField:
    field: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class PagingOptions:
    """One-based page number and page size."""

    page: int = 1
    limit: int = DEFAULT_LIMIT


@dataclass
class FindOptions:
    """Describes a repository query and how its result may be cached.

    Options are assembled with the fluent ``with_*`` methods, each of which
    returns the same instance. A query is cached only when it has a cache key.

    Examples:
        >>> options = (
        ...     FindOptions()
        ...     .with_project_id("537650f3b77efe23a47914f4")
        ...     .with_filter({"signature_hash": "abc"})
        ...     .with_sort("last_occurrence", SortDirection.DESC)
        ...     .with_paging(PagingOptions(page=2, limit=25))
        ...     .with_cache_key("recent")
        ... )
        >>> options.use_cache, options.get_skip()
        (True, 25)

    Attributes:
        query: Primary predicate.
        system_filter: Filter imposed by the application, such as permissions.
        user_filter: Filter supplied by the end user.
        ids: Restrict results to these document ids.
        organization_ids: Restrict results to these organizations.
        project_ids: Restrict results to these projects.
        date_range: (field, start, end) inclusive range restriction.
        fields: Projection. Empty returns whole documents.
        sort_by: Ordered sort specification.
        limit: Requested page size.
        page: One-based page number, used when ``use_paging`` is set.
        use_limit: A limit was requested explicitly, enabling ``has_more``.
        use_paging: Skip to ``page``.
        indices: Explicit target indices. Empty uses the repository default.
        cache_key: Raw cache key. Setting one enables caching.
        expires_in: Cache lifetime. None uses the configured default.
        include_soft_deleted: Do not exclude soft-deleted documents.
        has_more: Set by ``find`` when more results exist beyond the limit.
    """

    query: Query | None = None
    system_filter: Query | None = None
    user_filter: Query | None = None
    ids: list[str] = field(default_factory=list)
    organization_ids: list[str] = field(default_factory=list)
    project_ids: list[str] = field(default_factory=list)
    date_range: tuple[str, datetime | None, datetime | None] | None = None
    fields: list[str] = field(default_factory=list)
    sort_by: list[SortField] = field(default_factory=list)
    limit: int | None = None
    page: int | None = None
    use_limit: bool = False
    use_paging: bool = False
    indices: list[str] = field(default_factory=list)
    cache_key: str | None = None
    expires_in: timedelta | None = None
    include_soft_deleted: bool = False
    has_more: bool = False

    @property
    def use_cache(self) -> bool:
        return bool(self.cache_key)

    def with_query(self, query: Query | None) -> "FindOptions":
        self.query = query
        return self

    def with_system_filter(self, system_filter: Query | None) -> "FindOptions":
        self.system_filter = system_filter
        return self

    def with_filter(self, user_filter: Query | None) -> "FindOptions":
        self.user_filter = user_filter
        return self

    def with_id(self, id: str) -> "FindOptions":
        self.ids.append(id)
        return self

    def with_ids(self, ids: list[str]) -> "FindOptions":
        self.ids.extend(ids)
        return self

    def with_organization_id(self, organization_id: str) -> "FindOptions":
        self.organization_ids.append(organization_id)
        return self

    def with_organization_ids(self, organization_ids: list[str]) -> "FindOptions":
        self.organization_ids.extend(organization_ids)
        return self

    def with_project_id(self, project_id: str) -> "FindOptions":
        self.project_ids.append(project_id)
        return self

    def with_date_range(
        self, start: datetime | None, end: datetime | None, field: str
    ) -> "FindOptions":
        self.date_range = (field, start, end)
        return self

    def with_fields(self, *fields: str) -> "FindOptions":
        self.fields.extend(fields)
        return self

    def with_sort(
        self, field: str | None, direction: SortDirection = SortDirection.ASC
    ) -> "FindOptions":
        if field:
            self.sort_by.append(SortField(field, direction))
        return self

    def with_limit(self, limit: int | None) -> "FindOptions":
        self.limit = limit
        self.use_limit = limit is not None
        return self

    def with_paging(self, paging: PagingOptions | None) -> "FindOptions":
        if paging is None:
            return self
        self.with_limit(paging.limit)
        self.page = paging.page
        self.use_paging = True
        return self

    def with_indices(self, *indices: str) -> "FindOptions":
        self.indices.extend(indices)
        return self

    def with_cache_key(self, cache_key: str | None) -> "FindOptions":
        self.cache_key = cache_key
        return self

    def with_expires_in(self, expires_in: timedelta | None) -> "FindOptions":
        self.expires_in = expires_in
        return self

    def with_soft_deleted(self, include: bool = True) -> "FindOptions":
        self.include_soft_deleted = include
        return self

    def get_limit(self, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
        if self.limit is not None:
            return max(1, min(self.limit, maximum))
        # An id lookup without an explicit limit must return every match.
        if self.ids:
            return min(len(self.ids), maximum)
        return default

    def get_skip(self, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
        if not self.use_paging or not self.page or self.page < 1:
            return 0
        return (self.page - 1) * self.get_limit(default, maximum)

    def build_query(self, exclude_soft_deleted: bool) -> Query:
        """Combine every predicate into a single filter document."""
        clauses: list[Query] = []
        for predicate in (self.query, self.system_filter, self.user_filter):
            if predicate:
                clauses.append(predicate)

        if self.ids:
            clauses.append({"id": {"$in": list(self.ids)}})
        if self.organization_ids:
            clauses.append({"organization_id": {"$in": list(self.organization_ids)}})
        if self.project_ids:
            clauses.append({"project_id": {"$in": list(self.project_ids)}})

        if self.date_range is not None:
            field, start, end = self.date_range
            bounds: dict[str, Any] = {}
            if start is not None:
                bounds["$gte"] = start
            if end is not None:
                bounds["$lte"] = end
            if bounds:
                clauses.append({field: bounds})

        if exclude_soft_deleted and not self.include_soft_deleted:
            clauses.append({"is_deleted": {"$ne": True}})

        if not clauses:
            return {}
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}


class FindResults(BaseModel, Generic[D]):
    """Documents matched by a query.

    Attributes:
        documents: Matched documents, in backend order.
        total: Total number of matches, which exceeds ``len(documents)``
            when the query was paged.
        has_more: More matches exist beyond the requested limit.
    """

    documents: list[D] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False
