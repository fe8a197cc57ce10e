import logging
from datetime import timedelta
from typing import TypeVar, overload

from ...domain import (
    ChangeType,
    Document,
    EntityChanged,
    RepositoryUsageError,
)
from ..backend import DocumentRef, IndexOperation
from .config import RepositoryConfig
from .notifications import ChangeObserver, ChangeValidator, DocumentChange
from .read import ReadOnlyRepository
from .sharding import IndexDefinition

LOGGER = logging.getLogger(__name__)

D = TypeVar("D", bound=Document)


class Repository(ReadOnlyRepository[D]):
    """Reads and writes of one document type with change notification.

    Every mutation goes through the same pipeline:

    1. **Changing**: registered validators see the change and may veto it.
       A veto raises before anything is persisted.
    2. **Persisted**: the backend stores or deletes the documents.
    3. **Cache invalidated**: every cache entry tied to the documents is
       removed, never refreshed, so the next read repopulates it.
    4. **Changed**: registered observers are awaited in order.
    5. **Published**: one ``EntityChanged`` per document is submitted to the
       outbound queue. Publication is fire-and-forget and cannot undo the
       mutation.

    Documents must only be mutated through the repository; writing to the
    backend directly bypasses cache invalidation.
    """

    def __init__(
        self,
        document_type: type[D],
        index: IndexDefinition,
        config: RepositoryConfig,
    ):
        super().__init__(document_type, index, config)
        self.messages = config.messages
        self._validators: list[ChangeValidator[D]] = []
        self._observers: list[ChangeObserver[D]] = []

    def add_validator(self, validator: ChangeValidator[D]) -> None:
        """Register a validator run before every mutation is persisted."""
        self._validators.append(validator)

    def add_observer(self, observer: ChangeObserver[D]) -> None:
        """Register an observer notified after every persisted mutation."""
        self._observers.append(observer)

    # ========== Mutations ==========

    @overload
    async def add(
        self,
        documents: D,
        add_to_cache: bool = ...,
        expires_in: timedelta | None = ...,
        send_notification: bool = ...,
    ) -> D: ...

    @overload
    async def add(
        self,
        documents: list[D],
        add_to_cache: bool = ...,
        expires_in: timedelta | None = ...,
        send_notification: bool = ...,
    ) -> list[D]: ...

    async def add(
        self,
        documents: D | list[D],
        add_to_cache: bool = False,
        expires_in: timedelta | None = None,
        send_notification: bool = True,
    ) -> D | list[D]:
        """Persist new documents.

        Raises:
            ChangeRejectedError: If a validator vetoes the change.
            BackendQueryError: If the backend rejects the write.
        """
        items = self._as_list(documents)
        if items:
            await self._write(
                DocumentChange(ChangeType.ADDED, items),
                add_to_cache,
                expires_in,
                send_notification,
            )
        return documents

    @overload
    async def save(
        self,
        documents: D,
        add_to_cache: bool = ...,
        expires_in: timedelta | None = ...,
        send_notification: bool = ...,
    ) -> D: ...

    @overload
    async def save(
        self,
        documents: list[D],
        add_to_cache: bool = ...,
        expires_in: timedelta | None = ...,
        send_notification: bool = ...,
    ) -> list[D]: ...

    async def save(
        self,
        documents: D | list[D],
        add_to_cache: bool = False,
        expires_in: timedelta | None = None,
        send_notification: bool = True,
    ) -> D | list[D]:
        """Persist changes to existing documents.

        The stored originals are loaded, bypassing the cache, when any hook
        is registered or caching is enabled, so validators and observers can
        compare both versions and entries keyed by original values are removed.
        """
        items = self._as_list(documents)
        if not items:
            return documents

        originals: list[D] = []
        if self._validators or self._observers or self.enable_cache:
            found = await self.get_by_ids([document.id for document in items])
            originals = found.documents

        await self._write(
            DocumentChange(ChangeType.SAVED, items, originals),
            add_to_cache,
            expires_in,
            send_notification,
        )
        return documents

    async def remove(
        self, documents: str | D | list[D], send_notification: bool = True
    ) -> None:
        """Delete documents, or the document with the given id.

        Removing an id that does not exist is a no-op.
        """
        if isinstance(documents, str):
            if not documents:
                raise RepositoryUsageError("id is required")
            document = await self.get_by_id(documents)
            if document is None:
                return
            documents = document

        items = self._as_list(documents)
        if not items:
            return

        refs = [DocumentRef(document.id, self._index_for(document.id)) for document in items]
        change = DocumentChange(ChangeType.REMOVED, items)
        await self._on_changing(change)

        response = await self.backend.delete_documents(refs)
        if not response.is_valid:
            self._raise_for_response("remove", response.status, response.error)

        await self.invalidate_cache(items)
        await self._on_changed(change)
        if send_notification:
            self._publish_changes(change)

    async def remove_all(self) -> int:
        """Delete every document of this type and clear its cache entries.

        Per-document hooks do not run and no change events are published.

        Returns:
            Number of documents deleted.
        """
        response = await self.backend.delete_by_query({}, self.shards.default_indices())
        if not response.is_valid:
            self._raise_for_response("remove_all", response.status, response.error)

        if self.enable_cache:
            await self.cache.remove_by_prefix(self.get_scoped_cache_key(""))

        LOGGER.info(
            "Removed all documents",
            extra={"entity_type": self.type_name, "count": response.affected},
        )
        return response.affected

    # ========== Pipeline ==========

    async def _write(
        self,
        change: DocumentChange[D],
        add_to_cache: bool,
        expires_in: timedelta | None,
        send_notification: bool,
    ) -> None:
        operations = [
            IndexOperation(
                self._index_for(document.id), document.id, document.model_dump(mode="python")
            )
            for document in change.documents
        ]
        await self._on_changing(change)

        response = await self.backend.index_documents(operations)
        if not response.is_valid:
            self._raise_for_response(
                change.change_type.value.lower(), response.status, response.error
            )

        await self.invalidate_cache(change.documents, change.originals)
        if add_to_cache and self.enable_cache:
            await self._add_to_cache(change.documents, expires_in)

        await self._on_changed(change)
        if send_notification:
            self._publish_changes(change)

    async def _on_changing(self, change: DocumentChange[D]) -> None:
        for validator in self._validators:
            result = await validator(change)
            if not result.passed:
                LOGGER.info(
                    "Change rejected",
                    extra={
                        "entity_type": self.type_name,
                        "change_type": change.change_type.value,
                        "reason": result.reason,
                    },
                )
                result.raise_for_failure()

    async def _on_changed(self, change: DocumentChange[D]) -> None:
        for observer in self._observers:
            await observer(change)

    def _publish_changes(self, change: DocumentChange[D]) -> None:
        for document in change.documents:
            self.publish_message(self.entity_changed(change.change_type, document))

    def entity_changed(
        self,
        change_type: ChangeType,
        document: D | None = None,
        *,
        id: str | None = None,
        organization_id: str | None = None,
        project_id: str | None = None,
    ) -> EntityChanged:
        """Build the change notification for a document or a bare id."""
        scope = self.descriptor.scope
        if document is not None:
            id = document.id
            if scope.has_organization:
                organization_id = getattr(document, "organization_id", None)
            if scope.has_project:
                project_id = getattr(document, "project_id", None)

        if not id:
            raise RepositoryUsageError("a document or an id is required")

        return EntityChanged(
            change_type=change_type,
            id=id,
            organization_id=organization_id or None,
            project_id=project_id or None,
            type=self.type_name,
        )

    def publish_message(self, message: EntityChanged, delay: timedelta | None = None) -> None:
        if self.messages is None:
            return
        self.messages.submit(message, delay)

    # ========== Helpers ==========

    def _index_for(self, id: str) -> str:
        index = self.shards.resolve(id)
        if index is None:
            raise RepositoryUsageError(
                f"Cannot determine the index of {self.type_name} {id!r}"
            )
        return index

    @staticmethod
    def _as_list(documents: D | list[D]) -> list[D]:
        if documents is None:
            raise RepositoryUsageError("documents are required")
        if isinstance(documents, Document):
            return [documents]
        return list(documents)

