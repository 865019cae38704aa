"""Resume interrupted tasks from their checkpoints.

Before resuming a task in its workspace the workspace execution lock is
checked. A live lock means another process is working there and the
resume is abandoned; a stale lock is cleared first.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from planlock.logging import get_logger
from planlock.workspace.lock import WorkspaceLock

log = get_logger("workspace.recovery")


@dataclass
class Checkpoint:
    """Saved progress of one task."""

    task_id: str
    workspace_path: str
    step: str
    created_at: datetime
    data: dict[str, Any] = field(default_factory=dict)


class CheckpointStore(Protocol):
    """Persistence for task checkpoints."""

    def save_checkpoint(self, checkpoint: Checkpoint) -> None: ...

    def get_checkpoint(self, task_id: str) -> Checkpoint | None: ...

    def delete_checkpoint(self, task_id: str) -> None: ...

    def list_task_ids(self) -> list[str]: ...


class RecoveryOutcome(Enum):
    """How an attempt to recover a task ended."""

    RESUMED = "resumed"
    NO_CHECKPOINT = "no_checkpoint"
    WORKSPACE_LOCKED = "workspace_locked"
    FAILED = "failed"


@dataclass
class RecoveryResult:
    task_id: str
    outcome: RecoveryOutcome
    message: str = ""
    error: Exception | None = None


class TaskRecovery:
    """Recover tasks whose process died before finishing.

    Args:
        store: Where checkpoints are kept.
        workspace_lock: Used to check and clear workspace locks.
        resume: Called with the checkpoint to continue the task. Raising
            marks the recovery as failed and keeps the checkpoint.
    """

    def __init__(
        self,
        store: CheckpointStore,
        workspace_lock: WorkspaceLock,
        resume: Callable[[Checkpoint], None],
    ) -> None:
        self._store = store
        self._workspace_lock = workspace_lock
        self._resume = resume

    def recover_task(self, task_id: str) -> RecoveryResult:
        checkpoint = self._store.get_checkpoint(task_id)
        if checkpoint is None:
            return RecoveryResult(task_id, RecoveryOutcome.NO_CHECKPOINT)

        workspace = checkpoint.workspace_path
        info = self._workspace_lock.get_lock_info_including_stale(workspace)
        if info is not None:
            if not self._workspace_lock.is_lock_stale(info):
                log.info("Not resuming %s: workspace %s is locked", task_id, workspace)
                return RecoveryResult(
                    task_id,
                    RecoveryOutcome.WORKSPACE_LOCKED,
                    f"Workspace {workspace} is locked by another process "
                    f"(pid {info.pid} on {info.hostname}, command: {info.command})",
                )
            self._workspace_lock.clear_stale_lock(workspace)
            log.info("Cleared stale lock on %s before resuming %s", workspace, task_id)

        try:
            self._resume(checkpoint)
        except Exception as e:
            log.exception("Resuming task %s failed", task_id)
            return RecoveryResult(task_id, RecoveryOutcome.FAILED, str(e), error=e)

        self._store.delete_checkpoint(task_id)
        return RecoveryResult(task_id, RecoveryOutcome.RESUMED, f"Resumed from step {checkpoint.step}")

    def recover_all(self) -> list[RecoveryResult]:
        """Attempt recovery for every task with a checkpoint."""
        return [self.recover_task(task_id) for task_id in self._store.list_task_ids()]
