from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, Field

from .document import OwnedByOrganizationAndProject, SoftDeletable


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Convert to UTC, reading a naive timestamp as already being UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]


class Stack(OwnedByOrganizationAndProject):
    """A group of error events that share the same signature.

    Occurrences are never written directly; they are accumulated through
    ``StackRepository.increment_event_counter`` so concurrent writers cannot
    lose updates.

    Attributes:
        signature_hash: Deduplication key, unique within a project.
        first_occurrence: Earliest occurrence seen. Only moves earlier, or is
            reset together with ``total_occurrences``.
        last_occurrence: Latest occurrence seen. Only moves later.
        total_occurrences: Number of occurrences accumulated so far.
        is_regressed: Set when a fixed stack receives new occurrences.
        date_fixed: When the stack was marked as fixed, if it is.
    """

    model_config = {"validate_assignment": True}

    signature_hash: str = ""
    title: str | None = None
    type: str | None = None
    tags: list[str] = Field(default_factory=list)
    first_occurrence: UtcDateTime = Field(default_factory=utc_now)
    last_occurrence: UtcDateTime = Field(default_factory=utc_now)
    total_occurrences: int = Field(default=0, ge=0)
    is_regressed: bool = False
    is_hidden: bool = False
    occurrences_are_critical: bool = False
    date_fixed: UtcDateTime | None = None


class PersistentEvent(
    OwnedByOrganizationAndProject,
    SoftDeletable,
    is_time_partitioned=True,
):
    """A single stored error occurrence, partitioned by month of creation."""

    stack_id: str = ""
    type: str | None = None
    message: str | None = None
    date: UtcDateTime = Field(default_factory=utc_now)
    count: int = 1
