"""Message publisher port and its in-memory implementation."""

from abc import ABC, abstractmethod

from ...domain import EntityChanged


class MessagePublisher(ABC):
    """Abstract interface for publishing change notifications.

    Implementations might use:
    - In-memory lists (for testing or single-process apps)
    - Message brokers (RabbitMQ, Kafka, AWS SNS)
    - Pub/sub systems (Redis, Google Pub/Sub)

    Publication is best effort. The repository never waits on delivery and
    never rolls back a persisted change because publication failed.
    """

    @abstractmethod
    async def publish(self, message: EntityChanged) -> None: ...


class InMemoryMessagePublisher(MessagePublisher):
    """Simple in-memory publisher for testing.

    Stores all published messages in a single ordered list.
    """

    def __init__(self) -> None:
        self.messages: list[EntityChanged] = []

    async def publish(self, message: EntityChanged) -> None:
        self.messages.append(message)
