"""Workspace execution locks and crash recovery."""

from planlock.workspace.lock import LockInfo, LockType, WorkspaceLock, is_process_alive
from planlock.workspace.recovery import (
    Checkpoint,
    CheckpointStore,
    RecoveryOutcome,
    RecoveryResult,
    TaskRecovery,
)

__all__ = [
    "LockInfo",
    "LockType",
    "WorkspaceLock",
    "is_process_alive",
    "Checkpoint",
    "CheckpointStore",
    "RecoveryOutcome",
    "RecoveryResult",
    "TaskRecovery",
]
