from ...domain import PersistentEvent
from ..repository import (
    FindOptions,
    FindResults,
    IndexDefinition,
    PagingOptions,
    Repository,
    RepositoryConfig,
    SortDirection,
)

EVENT_INDEX = IndexDefinition("events")


class EventRepository(Repository[PersistentEvent]):
    """Stored error occurrences, kept in monthly partitions."""

    def __init__(self, config: RepositoryConfig, index: IndexDefinition = EVENT_INDEX):
        super().__init__(PersistentEvent, index, config)

    async def get_count_by_stack_id(self, stack_id: str) -> int:
        return await self.count(FindOptions().with_filter({"stack_id": stack_id}))

    async def get_by_stack_id(
        self, stack_id: str, paging: PagingOptions | None = None
    ) -> FindResults[PersistentEvent]:
        options = (
            FindOptions()
            .with_filter({"stack_id": stack_id})
            .with_sort("date", SortDirection.DESC)
            .with_paging(paging)
        )
        return await self.find(options)

    async def remove_all_by_stack_ids(self, stack_ids: list[str]) -> int:
        """Remove every event of the given stacks, one batch at a time.

        Events go through the regular removal pipeline without publishing a
        notification per event.

        Returns:
            Number of events removed.
        """
        if not stack_ids:
            return 0

        removed = 0
        while True:
            batch = await self.find(
                FindOptions()
                .with_filter({"stack_id": {"$in": list(stack_ids)}})
                .with_soft_deleted()
                .with_limit(self.settings.max_limit)
            )
            if not batch.documents:
                return removed
            await self.remove(batch.documents, send_notification=False)
            removed += len(batch.documents)
