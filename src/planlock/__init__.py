"""planlock: shared plan assignments and workspace execution locks."""

__version__ = "0.1.0"

# Public API
from planlock.assignments import (
    AssignmentEntry,
    AssignmentsDocument,
    ClaimPlanResult,
    ReleasePlanResult,
    claim_plan,
    is_stale_assignment,
    read_assignments,
    release_plan,
    write_assignments,
)
from planlock.config import Config, get_config, load_config
from planlock.errors import (
    AssignmentsFileParseError,
    AssignmentsVersionConflictError,
    LockTimeoutError,
    PlanlockError,
    RepositoryMismatchError,
    WorkspaceLockedError,
)
from planlock.workspace import LockInfo, LockType, WorkspaceLock

__all__ = [
    # Assignments
    "AssignmentEntry",
    "AssignmentsDocument",
    "ClaimPlanResult",
    "ReleasePlanResult",
    "claim_plan",
    "release_plan",
    "read_assignments",
    "write_assignments",
    "is_stale_assignment",
    # Workspace locks
    "LockInfo",
    "LockType",
    "WorkspaceLock",
    # Config
    "Config",
    "load_config",
    "get_config",
    # Errors
    "PlanlockError",
    "AssignmentsFileParseError",
    "RepositoryMismatchError",
    "AssignmentsVersionConflictError",
    "LockTimeoutError",
    "WorkspaceLockedError",
]
