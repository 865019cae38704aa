"""Error types for plan assignments and workspace locks."""

from __future__ import annotations


class PlanlockError(Exception):
    """Base class for all planlock errors."""


class AssignmentsFileParseError(PlanlockError):
    """The assignments file exists but is malformed or fails validation.

    Never auto-repaired: the file is left untouched so the operator can
    inspect it.
    """


class RepositoryMismatchError(AssignmentsFileParseError):
    """The assignments file belongs to a different repository."""

    def __init__(self, expected: str, found: str) -> None:
        super().__init__(
            f"Assignments file repositoryId mismatch: expected {expected}, found {found}"
        )
        self.expected = expected
        self.found = found


class AssignmentsVersionConflictError(PlanlockError):
    """The optimistic-concurrency check failed.

    Recoverable: re-read the document and reapply the intended change.
    """


class LockTimeoutError(AssignmentsVersionConflictError):
    """Timed out waiting for the assignments mutex."""

    def __init__(self, lock_path: str) -> None:
        super().__init__(f"Timed out acquiring assignments lock at {lock_path}")
        self.lock_path = lock_path


class WorkspaceLockedError(PlanlockError):
    """A workspace execution lock is held by another process."""
