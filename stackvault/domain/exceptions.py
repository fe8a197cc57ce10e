"""Exceptions raised by the repository layer.

Not-found conditions are never raised; lookups return ``None`` or empty
results instead. Conflicts exhausted during an optimistic counter update are
logged and swallowed by the repository, so they have no exception type.
"""


class RepositoryUsageError(ValueError):
    """Raised when a repository operation is called with invalid arguments.

    The error is raised before any cache or backend I/O takes place.
    """

    pass


class BackendQueryError(Exception):
    """Raised when the search backend returns a non-successful response.

    Attributes:
        status: Status code reported by the backend.
        message: Diagnostic detail reported by the backend, if any.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (status {self.status})"


class ChangeRejectedError(Exception):
    """Raised when a change validator vetoes a mutation before it is persisted."""

    pass


class IntegrityViolationError(ChangeRejectedError):
    """Raised when removing a document that other documents still reference."""

    pass
