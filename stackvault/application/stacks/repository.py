import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

from ...domain import (
    ChangeType,
    IntegrityViolationError,
    RepositoryUsageError,
    Stack,
    as_utc,
)
from ..repository import (
    DocumentChange,
    FindOptions,
    FindResults,
    IndexDefinition,
    PagingOptions,
    Repository,
    RepositoryConfig,
    SortDirection,
    ValidationResult,
)
from .events import EventRepository

LOGGER = logging.getLogger(__name__)

STACK_INDEX = IndexDefinition("stacks")


def increment_occurrences(source: dict[str, Any], params: Mapping[str, Any]) -> None:
    """Fold a batch of occurrences into a stored stack.

    A stack whose total was reset to zero takes the batch's first occurrence
    unconditionally. Otherwise the first occurrence only moves earlier and
    the last occurrence only moves later.
    """
    first = source.get("first_occurrence")
    if not source.get("total_occurrences") or first is None or first > params["min_occurrence_date"]:
        source["first_occurrence"] = params["min_occurrence_date"]

    last = source.get("last_occurrence")
    if last is None or last < params["max_occurrence_date"]:
        source["last_occurrence"] = params["max_occurrence_date"]

    source["total_occurrences"] = source.get("total_occurrences", 0) + params["count"]


class StackRepository(Repository[Stack]):
    """Stacks of deduplicated error events.

    On top of the generic repository, stacks are also cached under their
    signature so deduplication can find a previously seen signature without
    a search. The signature entry is written and removed together with the
    id entry.

    A stack cannot be removed while events still reference it.
    """

    def __init__(
        self,
        config: RepositoryConfig,
        events: EventRepository,
        index: IndexDefinition = STACK_INDEX,
    ):
        super().__init__(Stack, index, config)
        self.events = events
        self.add_validator(self._ensure_no_events)

    async def _ensure_no_events(self, change: DocumentChange[Stack]) -> ValidationResult:
        if change.change_type is not ChangeType.REMOVED:
            return ValidationResult.ok()

        for stack in change.documents:
            if await self.events.get_count_by_stack_id(stack.id) > 0:
                return ValidationResult.fail(
                    f'Stack "{stack.id}" can\'t be deleted because it has events associated to it.',
                    IntegrityViolationError,
                )
        return ValidationResult.ok()

    # ========== Signature Cache ==========

    def get_signature_cache_key(self, project_id: str, signature_hash: str) -> str:
        return f"{project_id}-{signature_hash}-{self.settings.stacking_version}"

    async def _add_to_cache(
        self, documents: list[Stack], expires_in: timedelta | None = None
    ) -> None:
        await super()._add_to_cache(documents, expires_in)
        for stack in documents:
            await self._set_cached(
                self.get_signature_cache_key(stack.project_id, stack.signature_hash),
                stack.model_dump(mode="json"),
                expires_in,
            )

    async def _invalidate_documents(self, documents: list[Stack], originals: list[Stack]) -> None:
        # Originals are included so a changed signature leaves no stale entry.
        for stack in [*documents, *originals]:
            await self.invalidate_cache_key(
                self.get_signature_cache_key(stack.project_id, stack.signature_hash)
            )
        await super()._invalidate_documents(documents, originals)

    async def invalidate_stack_cache(
        self, project_id: str, stack_id: str, signature_hash: str
    ) -> None:
        await self.invalidate_cache_key(stack_id)
        await self.invalidate_cache_key(self.get_signature_cache_key(project_id, signature_hash))

    async def _invalidate_counted_stack(self, stack_id: str) -> None:
        if not self.enable_cache:
            return

        # The signature entry is keyed by stored fields, so read them before
        # the id entry goes.
        source = await self._get_cached(stack_id)
        if source is None:
            found = await self.backend.get(self._index_for(stack_id), stack_id)
            source = found.source if found.found else None

        if source is not None and source.get("signature_hash"):
            await self.invalidate_stack_cache(
                source.get("project_id", ""), stack_id, source["signature_hash"]
            )
        else:
            await self.invalidate_cache_key(stack_id)

    async def get_by_signature_hash(self, project_id: str, signature_hash: str) -> Stack | None:
        """Find the stack of a project with the given signature, through the cache."""
        if not project_id or not signature_hash:
            raise RepositoryUsageError("project_id and signature_hash are required")

        return await self.find_one(
            FindOptions()
            .with_project_id(project_id)
            .with_filter({"signature_hash": signature_hash})
            .with_cache_key(self.get_signature_cache_key(project_id, signature_hash))
        )

    # ========== Counters ==========

    async def increment_event_counter(
        self,
        organization_id: str,
        project_id: str,
        stack_id: str,
        min_occurrence_date: datetime,
        max_occurrence_date: datetime,
        count: int,
        send_notifications: bool = True,
    ) -> bool:
        """Atomically add ``count`` occurrences to a stack.

        The backend applies the change with optimistic concurrency and
        retries conflicting writes itself. If every retry conflicts, or the
        stack does not exist, the failure is logged and the increment is
        dropped; callers are not expected to retry.

        On success the stack's id and signature cache entries are removed
        and, when ``send_notifications`` is set, a delayed ``Saved``
        notification is queued so a burst of increments yields a single
        notification.

        Returns:
            True if the increment was applied.

        Raises:
            RepositoryUsageError: If the arguments are invalid.
        """
        if not stack_id:
            raise RepositoryUsageError("stack_id is required")
        if count < 0:
            raise RepositoryUsageError("count must not be negative")

        min_occurrence_date = as_utc(min_occurrence_date)
        max_occurrence_date = as_utc(max_occurrence_date)
        if min_occurrence_date > max_occurrence_date:
            raise RepositoryUsageError("min_occurrence_date is after max_occurrence_date")

        response = await self.backend.update(
            self._index_for(stack_id),
            stack_id,
            increment_occurrences,
            {
                "min_occurrence_date": min_occurrence_date,
                "max_occurrence_date": max_occurrence_date,
                "count": count,
            },
            retry_on_conflict=self.settings.counter_update_retries,
        )
        if not response.is_valid:
            LOGGER.error(
                'Error occurred incrementing total event occurrences on stack "%s"',
                stack_id,
                extra={
                    "stack_id": stack_id,
                    "status": response.status,
                    "error": response.error,
                    "attempts": response.attempts,
                },
            )
            return False

        await self._invalidate_counted_stack(stack_id)

        if send_notifications:
            self.publish_message(
                self.entity_changed(
                    ChangeType.SAVED,
                    id=stack_id,
                    organization_id=organization_id,
                    project_id=project_id,
                ),
                delay=self.settings.counter_publish_delay,
            )
        return True

    async def mark_as_regressed(self, stack_id: str) -> Stack | None:
        """Flag a fixed stack as regressed.

        This is a plain read-modify-write. A concurrent counter increment
        landing between the read and the save is overwritten by the save.

        Returns:
            The saved stack, or None if it does not exist.
        """
        stack = await self.get_by_id(stack_id)
        if stack is None:
            return None

        stack.date_fixed = None
        stack.is_regressed = True
        await self.save(stack, add_to_cache=True)
        return stack

    # ========== Queries ==========

    async def get_by_filter(
        self,
        system_filter: dict[str, Any] | None,
        user_filter: dict[str, Any] | None,
        sort: str | None,
        sort_order: SortDirection,
        field: str | None,
        utc_start: datetime | None,
        utc_end: datetime | None,
        paging: PagingOptions | None = None,
    ) -> FindResults[Stack]:
        if not sort:
            sort = "last_occurrence"
            sort_order = SortDirection.DESC

        options = (
            FindOptions()
            .with_date_range(utc_start, utc_end, field or "last_occurrence")
            .with_system_filter(system_filter)
            .with_filter(user_filter)
            .with_paging(paging)
            .with_sort(sort, sort_order)
        )
        return await self.find(options)

    async def get_most_recent(
        self,
        project_id: str,
        utc_start: datetime,
        utc_end: datetime,
        paging: PagingOptions | None = None,
        query: dict[str, Any] | None = None,
    ) -> FindResults[Stack]:
        return await self._get_in_range(
            "last_occurrence", project_id, utc_start, utc_end, paging, query
        )

    async def get_new(
        self,
        project_id: str,
        utc_start: datetime,
        utc_end: datetime,
        paging: PagingOptions | None = None,
        query: dict[str, Any] | None = None,
    ) -> FindResults[Stack]:
        return await self._get_in_range(
            "first_occurrence", project_id, utc_start, utc_end, paging, query
        )

    async def _get_in_range(
        self,
        field: str,
        project_id: str,
        utc_start: datetime,
        utc_end: datetime,
        paging: PagingOptions | None,
        query: dict[str, Any] | None,
    ) -> FindResults[Stack]:
        options = (
            FindOptions()
            .with_project_id(project_id)
            .with_query(query)
            .with_date_range(utc_start, utc_end, field)
            .with_sort(field, SortDirection.DESC)
            .with_paging(paging)
        )
        return await self.find(options)
