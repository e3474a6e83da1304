"""Exception hierarchy for repository operations.

Finders never raise for missing rows or failed queries; they return empty
results. What does raise is misuse that callers must fix: wrong argument
types, repositories without a table, and commits that fail.
"""

from typing import Any


class RepositoryError(Exception):
    """Base exception for all repository operations.

    Example:
        try:
            repo.insert(author).execute()
            repo.flush()
        except RepositoryError as e:
            logger.error(f"Database operation failed: {e}")
    """
    pass


class TypeMismatchError(RepositoryError, TypeError):
    """Raised when a model argument is neither a Row entity nor a mapping.

    Raised before anything is queued, so the table handle is left untouched.
    """

    def __init__(self, value: Any) -> None:
        super().__init__(
            "Param 'models' must be a Row entity, a mapping of column values, "
            f"or a list of those; got {type(value).__name__}"
        )
        self.value = value


class UnboundTableError(RepositoryError):
    """Raised when a repository cannot be bound to a table handle.

    Repositories are only constructible with a usable table, so no operation
    has to guard against a missing one.
    """
    pass


class FlushError(RepositoryError):
    """Raised when committing the shared transaction fails."""
    pass
