"""Repositories for error stacks and their stored events."""

from .events import EVENT_INDEX, EventRepository
from .repository import STACK_INDEX, StackRepository, increment_occurrences

__all__ = [
    "StackRepository",
    "EventRepository",
    "STACK_INDEX",
    "EVENT_INDEX",
    "increment_occurrences",
]
