"""Pre- and post-mutation hooks owned by a repository.

Validators run before a change is persisted and may veto it. Observers run
after the change has been persisted and the cache invalidated.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ...domain import ChangeRejectedError, ChangeType, Document

D = TypeVar("D", bound=Document)


@dataclass(frozen=True)
class DocumentChange(Generic[D]):
    """A mutation about to be, or just, persisted.

    Attributes:
        change_type: Kind of mutation.
        documents: Documents as they will be persisted.
        originals: Stored versions of the documents before the mutation,
            for saves. Empty for additions and removals.
    """

    change_type: ChangeType
    documents: list[D]
    originals: list[D] = field(default_factory=list)

    def original_of(self, document: D) -> D | None:
        for original in self.originals:
            if original.id == document.id:
                return original
        return None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a change validator.

    Examples:
        >>> ValidationResult.ok().passed
        True
        >>> ValidationResult.fail("stack has events", IntegrityViolationError).reason
        'stack has events'
    """

    passed: bool
    reason: str | None = None
    error_type: type[ChangeRejectedError] = ChangeRejectedError

    @staticmethod
    def ok() -> "ValidationResult":
        return _OK

    @staticmethod
    def fail(
        reason: str, error_type: type[ChangeRejectedError] = ChangeRejectedError
    ) -> "ValidationResult":
        return ValidationResult(passed=False, reason=reason, error_type=error_type)

    def raise_for_failure(self) -> None:
        if not self.passed:
            raise self.error_type(self.reason or "Change rejected")


_OK = ValidationResult(passed=True)

ChangeValidator = Callable[[DocumentChange[D]], Awaitable[ValidationResult]]
ChangeObserver = Callable[[DocumentChange[D]], Awaitable[None]]
