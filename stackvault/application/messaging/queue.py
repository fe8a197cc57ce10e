import asyncio
import logging
from datetime import timedelta

from ...domain import ChangeType, EntityChanged
from .publisher import MessagePublisher

LOGGER = logging.getLogger(__name__)


class OutboundMessageQueue:
    """Decouples change notifications from the mutation that produced them.

    ``submit`` never blocks and never raises on behalf of the publisher:
    every message is delivered by its own task on the running event loop.
    A message submitted with a delay waits before delivery, and while it
    waits any further delayed message with the same coalescing key is
    dropped, so a burst of changes to one entity yields one notification.

    Examples:
        >>> queue = OutboundMessageQueue(InMemoryMessagePublisher())
        >>> queue.submit(message, delay=timedelta(seconds=1.5))
        >>> await queue.drain()
    """

    def __init__(self, publisher: MessagePublisher):
        self.publisher = publisher
        self._tasks: set[asyncio.Task[None]] = set()
        self._delayed: set[tuple[str, str, ChangeType]] = set()

    @property
    def pending(self) -> int:
        """Number of messages submitted but not yet delivered."""
        return len(self._tasks)

    def submit(self, message: EntityChanged, delay: timedelta | None = None) -> bool:
        """Schedule ``message`` for delivery.

        Must be called from a running event loop.

        Args:
            message: The notification to deliver.
            delay: Optional delay before delivery.

        Returns:
            False if the message was coalesced into a pending one.
        """
        key = message.coalescing_key
        if delay is not None:
            if key in self._delayed:
                LOGGER.debug(
                    "Coalesced change notification",
                    extra={"entity_type": message.type, "entity_id": message.id},
                )
                return False
            self._delayed.add(key)

        task = asyncio.get_running_loop().create_task(self._deliver(message, delay))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _deliver(self, message: EntityChanged, delay: timedelta | None) -> None:
        try:
            if delay is not None:
                try:
                    await asyncio.sleep(delay.total_seconds())
                finally:
                    self._delayed.discard(message.coalescing_key)
            await self.publisher.publish(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception(
                "Failed to publish change notification",
                extra={
                    "entity_type": message.type,
                    "entity_id": message.id,
                    "change_type": message.change_type.value,
                },
            )

    async def drain(self) -> None:
        """Wait until every submitted message has been delivered or dropped."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel every pending delivery."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._delayed.clear()
