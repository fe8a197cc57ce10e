import logging
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar

from ...domain import BackendQueryError, Document, RepositoryUsageError
from ..backend import DocumentRef, SearchRequest
from .cache import NullCacheBackend, scoped_cache_key, utc_now
from .config import RepositoryConfig
from .options import FindOptions, FindResults, PagingOptions, SortDirection
from .sharding import IndexDefinition, ShardResolver

LOGGER = logging.getLogger(__name__)

D = TypeVar("D", bound=Document)


class ReadOnlyRepository(Generic[D]):
    """Cache-augmented reads of one document type.

    Every cache entry the repository writes is addressed through
    :meth:`get_scoped_cache_key`, so types sharing a cache backend never
    collide. Reads hold no locks: two concurrent misses for the same key may
    both query the backend and both populate the cache, which is harmless
    because mutations remove cache entries rather than patch them.

    Point lookups go straight to the index resolved from the document id and
    fall back to a search of the default indices when the id cannot be
    resolved or the lookup finds nothing.
    """

    # The repository mediates between three collaborators: the shard
    # resolver decides where a document lives, the backend answers queries
    # and the cache short-circuits repeated reads. Capability flags come from
    # the document type's descriptor and are resolved once here.

    def __init__(
        self,
        document_type: type[D],
        index: IndexDefinition,
        config: RepositoryConfig,
    ):
        self.document_type = document_type
        self.descriptor = document_type.descriptor
        self.shards = ShardResolver.for_entity(self.descriptor, index)
        self.backend = config.backend
        self.cache = config.cache_backend
        self.settings = config.settings
        self.enable_cache = self.settings.enable_cache and not isinstance(
            self.cache, NullCacheBackend
        )
        self._results_type: type[FindResults[D]] = FindResults[document_type]  # type: ignore[valid-type]

    @property
    def type_name(self) -> str:
        return self.descriptor.type_name

    # ========== Cache Helpers ==========

    def get_scoped_cache_key(self, cache_key: str) -> str:
        return scoped_cache_key(self.type_name, cache_key)

    def _expires_at(self, expires_in: timedelta | None) -> datetime:
        return utc_now() + (expires_in or self.settings.default_cache_expiration)

    async def _get_cached(self, cache_key: str) -> Any | None:
        cached = await self.cache.get(self.get_scoped_cache_key(cache_key))
        LOGGER.debug(
            "Cache %s",
            "hit" if cached.has_value else "miss",
            extra={"entity_type": self.type_name, "cache_key": cache_key},
        )
        return cached.value if cached.has_value else None

    async def _set_cached(self, cache_key: str, value: Any, expires_in: timedelta | None) -> None:
        await self.cache.set(
            self.get_scoped_cache_key(cache_key), value, self._expires_at(expires_in)
        )

    async def _add_to_cache(self, documents: list[D], expires_in: timedelta | None = None) -> None:
        """Cache documents under their id.

        Subclasses extend this to write secondary entries for the same
        document; those must then be removed in :meth:`_invalidate_documents`.
        """
        for document in documents:
            await self._set_cached(document.id, document.model_dump(mode="json"), expires_in)

    async def _invalidate_documents(self, documents: list[D], originals: list[D]) -> None:
        for document in documents:
            await self.cache.remove(self.get_scoped_cache_key(document.id))

    async def invalidate_cache_key(self, cache_key: str) -> None:
        if self.enable_cache:
            await self.cache.remove(self.get_scoped_cache_key(cache_key))

    async def invalidate_cache(
        self, documents: D | list[D], originals: list[D] | None = None
    ) -> None:
        """Remove the cache entries of ``documents`` and their originals."""
        if not self.enable_cache:
            return
        if isinstance(documents, Document):
            documents = [documents]
        await self._invalidate_documents(documents, originals or [])

    def _from_source(self, source: dict[str, Any]) -> D:
        return self.document_type.model_validate(source)

    # ========== Query Building ==========

    def _build_request(
        self,
        options: FindOptions,
        limit: int | None = None,
        fields: list[str] | None = None,
    ) -> SearchRequest:
        default_limit = self.settings.default_limit
        max_limit = self.settings.max_limit
        return SearchRequest(
            query=options.build_query(self.descriptor.supports_soft_delete),
            indices=options.indices or self.shards.default_indices(),
            fields=fields if fields is not None else options.fields,
            sort=[(sort.field, int(sort.direction)) for sort in options.sort_by],
            limit=limit or options.get_limit(default_limit, max_limit),
            skip=options.get_skip(default_limit, max_limit),
        )

    def _raise_for_response(self, operation: str, status: int, error: str | None) -> None:
        LOGGER.error(
            "Backend query failed",
            extra={
                "entity_type": self.type_name,
                "operation": operation,
                "status": status,
                "error": error,
            },
        )
        raise BackendQueryError(
            f"{operation} on {self.type_name} failed: {error or 'unknown error'}", status
        )

    # ========== Find Operations ==========

    async def find(self, options: FindOptions) -> FindResults[D]:
        """Search for documents matching ``options``.

        When the options carry a cache key, a cached result set is returned
        without querying, and a fresh result set is cached with its total.

        Raises:
            RepositoryUsageError: If options are missing.
            BackendQueryError: If the backend rejects the search.
        """
        if options is None:
            raise RepositoryUsageError("options are required")

        use_cache = self.enable_cache and options.use_cache
        if use_cache and (cached := await self._get_cached(options.cache_key)) is not None:
            results = self._results_type.model_validate(cached)
            options.has_more = results.has_more
            return results

        request = self._build_request(options)
        response = await self.backend.search(request)
        if not response.is_valid:
            self._raise_for_response("find", response.status, response.error)

        options.has_more = options.use_limit and response.total > request.limit
        results = self._results_type(
            documents=[self._from_source(source) for source in response.documents],
            total=response.total,
            has_more=options.has_more,
        )

        if use_cache:
            await self._set_cached(
                options.cache_key, results.model_dump(mode="json"), options.expires_in
            )
        return results

    async def find_one(self, options: FindOptions) -> D | None:
        """Return the first document matching ``options``, or None.

        Only a found document is cached; misses are always re-queried.
        """
        if options is None:
            raise RepositoryUsageError("options are required")

        use_cache = self.enable_cache and options.use_cache
        if use_cache and (cached := await self._get_cached(options.cache_key)) is not None:
            return self._from_source(cached)

        response = await self.backend.search(self._build_request(options, limit=1))
        if not response.is_valid:
            self._raise_for_response("find_one", response.status, response.error)

        if not response.documents:
            return None

        result = self._from_source(response.documents[0])
        if use_cache:
            await self._set_cached(
                options.cache_key, result.model_dump(mode="json"), options.expires_in
            )
        return result

    async def exists(self, target: str | FindOptions) -> bool:
        """Check whether a document with the given id, or matching options, exists.

        Never cached.
        """
        if isinstance(target, str) or target is None:
            if not target:
                return False
            target = FindOptions().with_id(target)

        response = await self.backend.search(
            self._build_request(target, limit=1, fields=["id"])
        )
        if not response.is_valid:
            self._raise_for_response("exists", response.status, response.error)
        return response.total > 0

    async def count(self, options: FindOptions | None = None) -> int:
        """Count matching documents.

        With options, the count is cached under ``"count-" + cache_key`` so it
        never collides with the cached result set of the same query. Without
        options, every non-deleted document in the default indices is counted
        and nothing is cached.
        """
        if options is None:
            response = await self.backend.count(
                FindOptions().build_query(self.descriptor.supports_soft_delete),
                self.shards.default_indices(),
            )
            if not response.is_valid:
                self._raise_for_response("count", response.status, response.error)
            return response.count

        use_cache = self.enable_cache and options.use_cache
        count_key = f"count-{options.cache_key}"
        if use_cache and (cached := await self._get_cached(count_key)) is not None:
            return int(cached)

        response = await self.backend.count(
            options.build_query(self.descriptor.supports_soft_delete),
            options.indices or self.shards.default_indices(),
        )
        if not response.is_valid:
            self._raise_for_response("count", response.status, response.error)

        if use_cache:
            await self._set_cached(count_key, response.count, options.expires_in)
        return response.count

    async def simple_aggregation(self, options: FindOptions, field: str) -> dict[str, int]:
        """Count matching documents per value of ``field``, top buckets only."""
        if options is None:
            raise RepositoryUsageError("options are required")
        if not field:
            raise RepositoryUsageError("field is required")

        response = await self.backend.aggregate(
            options.build_query(self.descriptor.supports_soft_delete),
            options.indices or self.shards.default_indices(),
            field,
            self.settings.aggregation_bucket_limit,
        )
        if not response.is_valid:
            self._raise_for_response("simple_aggregation", response.status, response.error)
        return response.buckets

    # ========== Id Lookups ==========

    async def get_by_id(
        self, id: str, use_cache: bool = False, expires_in: timedelta | None = None
    ) -> D | None:
        """Load one document by id.

        Args:
            id: Document id. Empty ids return None.
            use_cache: Read through the cache and populate it on a miss.
            expires_in: Lifetime of the populated cache entry.

        Returns:
            The document, or None if it does not exist.
        """
        if not id:
            return None

        use_cache = use_cache and self.enable_cache
        if use_cache and (cached := await self._get_cached(id)) is not None:
            return self._from_source(cached)

        result: D | None = None
        if (index := self.shards.resolve(id)) is not None:
            found = await self.backend.get(index, id)
            if found.found and found.source is not None:
                result = self._from_source(found.source)

        # Fall back to a search when the shard is unknown or misses.
        if result is None:
            result = await self.find_one(FindOptions().with_id(id))

        if use_cache and result is not None:
            await self._add_to_cache([result], expires_in)
        return result

    async def get_by_ids(
        self,
        ids: list[str],
        paging: PagingOptions | None = None,
        use_cache: bool = False,
        expires_in: timedelta | None = None,
    ) -> FindResults[D]:
        """Load several documents by id.

        Cached documents are served first, the rest are fetched with a single
        multi-get against their resolved shards, and whatever that misses (or
        could not be resolved) is found with one search on the id set.

        Documents are returned in the order of ``ids``. With ``paging`` only
        the requested page is returned; ``total`` still counts every
        document found.
        """
        ids = list(dict.fromkeys(id for id in ids or [] if id))
        if not ids:
            return self._results_type()
        requested = ids

        use_cache = use_cache and self.enable_cache
        results: list[D] = []
        if use_cache:
            for id in ids:
                if (cached := await self._get_cached(id)) is not None:
                    results.append(self._from_source(cached))

            cached_ids = {document.id for document in results}
            ids = [id for id in ids if id not in cached_ids]
            if not ids:
                return self._page_by_ids(results, requested, paging)

        refs: list[DocumentRef] = []
        unresolved: list[str] = []
        for id in ids:
            if (index := self.shards.resolve(id)) is not None:
                refs.append(DocumentRef(id, index))
            else:
                unresolved.append(id)

        found: list[D] = []
        if refs:
            for item in await self.backend.multi_get(refs):
                if item.found and item.source is not None:
                    found.append(self._from_source(item.source))
                else:
                    unresolved.append(item.id)

        if unresolved:
            found.extend((await self.find(FindOptions().with_ids(unresolved))).documents)

        if use_cache and found:
            await self._add_to_cache(found, expires_in)

        results.extend(found)
        return self._page_by_ids(results, requested, paging)

    def _page_by_ids(
        self, documents: list[D], ids: list[str], paging: PagingOptions | None
    ) -> FindResults[D]:
        position = {id: index for index, id in enumerate(ids)}
        documents = sorted(documents, key=lambda document: position.get(document.id, len(ids)))
        total = len(documents)
        if paging is None:
            return self._results_type(documents=documents, total=total)

        options = FindOptions().with_paging(paging)
        skip = options.get_skip(self.settings.default_limit, self.settings.max_limit)
        limit = options.get_limit(self.settings.default_limit, self.settings.max_limit)
        return self._results_type(
            documents=documents[skip : skip + limit],
            total=total,
            has_more=total > skip + limit,
        )

    # ========== Convenience Queries ==========

    async def get_all(
        self,
        sort: str | None = None,
        sort_order: SortDirection = SortDirection.ASC,
        paging: PagingOptions | None = None,
    ) -> FindResults[D]:
        return await self.find(FindOptions().with_paging(paging).with_sort(sort, sort_order))

    async def get_by_search(
        self,
        system_filter: dict[str, Any] | None,
        user_filter: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        sort: str | None = None,
        sort_order: SortDirection = SortDirection.ASC,
        paging: PagingOptions | None = None,
    ) -> FindResults[D]:
        options = (
            FindOptions()
            .with_system_filter(system_filter)
            .with_filter(user_filter)
            .with_query(query)
            .with_sort(sort, sort_order)
            .with_paging(paging)
        )
        return await self.find(options)

    async def get_by_organization_ids(
        self,
        organization_ids: list[str],
        paging: PagingOptions | None = None,
        use_cache: bool = False,
        expires_in: timedelta | None = None,
    ) -> FindResults[D]:
        if not self.descriptor.scope.has_organization:
            raise RepositoryUsageError(f"{self.type_name} is not owned by organizations")
        if not organization_ids:
            return self._results_type()

        cache_key = None
        if use_cache and len(organization_ids) == 1:
            cache_key = f"org:{organization_ids[0]}"

        options = (
            FindOptions()
            .with_organization_ids(organization_ids)
            .with_paging(paging)
            .with_cache_key(cache_key)
            .with_expires_in(expires_in)
        )
        return await self.find(options)

    async def get_by_organization_id(
        self,
        organization_id: str,
        paging: PagingOptions | None = None,
        use_cache: bool = False,
        expires_in: timedelta | None = None,
    ) -> FindResults[D]:
        if not organization_id:
            return self._results_type()
        return await self.get_by_organization_ids(
            [organization_id], paging, use_cache, expires_in
        )

    async def get_by_project_id(
        self,
        project_id: str,
        paging: PagingOptions | None = None,
        use_cache: bool = False,
        expires_in: timedelta | None = None,
    ) -> FindResults[D]:
        if not self.descriptor.scope.has_project:
            raise RepositoryUsageError(f"{self.type_name} is not owned by projects")
        if not project_id:
            return self._results_type()

        options = (
            FindOptions()
            .with_project_id(project_id)
            .with_paging(paging)
            .with_cache_key(f"project:{project_id}" if use_cache else None)
            .with_expires_in(expires_in)
        )
        return await self.find(options)
