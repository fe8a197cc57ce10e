"""Outbound change notifications.

This package provides:
- MessagePublisher: Abstract port for the messaging backend
- InMemoryMessagePublisher: List-backed publisher for tests
- OutboundMessageQueue: Fire-and-forget delivery with optional delay
"""

from .publisher import InMemoryMessagePublisher, MessagePublisher
from .queue import OutboundMessageQueue

__all__ = [
    "MessagePublisher",
    "InMemoryMessagePublisher",
    "OutboundMessageQueue",
]
