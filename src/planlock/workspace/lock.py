"""Workspace execution lock.

One JSON record per workspace directory, stored under the config root so
that a checkout's working tree is never touched. The record says which
process is running in the workspace:

- persistent: held until explicitly released (``planlock lock``); never
  considered stale.
- transient: tied to the lifetime of the acquiring process; released at
  interpreter exit and considered stale once that process is gone.

The read-check-write on a record is serialized with a ``filelock`` guard
file next to it. Records themselves are replaced atomically.
"""

from __future__ import annotations

import atexit
import hashlib
import os
import socket
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from filelock import FileLock
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from planlock.assignments.stale import is_lock_record_expired
from planlock.config.paths import get_workspace_lock_dir
from planlock.errors import WorkspaceLockedError
from planlock.fileio import write_text_atomic
from planlock.logging import get_logger

log = get_logger("workspace.lock")

LOCK_VERSION = 2
DEFAULT_STALE_TIMEOUT = timedelta(hours=24)
GUARD_TIMEOUT = 10


class LockType(str, Enum):
    """Lifetime of a workspace lock."""

    PERSISTENT = "persistent"
    TRANSIENT = "transient"


class LockInfo(BaseModel):
    """A workspace lock record as stored on disk."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: LockType
    pid: int | None = None
    hostname: str
    command: str
    started_at: datetime = Field(alias="startedAt")
    workspace_path: str | None = Field(default=None, alias="workspacePath")
    version: int = LOCK_VERSION

    @field_validator("type", mode="before")
    @classmethod
    def _legacy_type(cls, value: object) -> object:
        # Older records call transient locks "pid" locks
        if value == "pid":
            return LockType.TRANSIENT
        return value

    @field_validator("started_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2) + "\n"


def is_process_alive(pid: int) -> bool:
    """Best-effort check that ``pid`` names a running process."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, but owned by someone else
        return True
    return True


class WorkspaceLock:
    """Acquire, inspect and release workspace execution locks.

    Args:
        lock_dir: Where records live. Defaults to ``<configRoot>/locks``.
        stale_timeout: Age after which a transient lock is stale.
        pid: Process id to act as. Defaults to the current process.
    """

    # Exit cleanups for transient locks, keyed by record path
    _cleanup_handlers: dict[str, Callable[[], None]] = {}

    def __init__(
        self,
        lock_dir: Path | str | None = None,
        *,
        stale_timeout: timedelta = DEFAULT_STALE_TIMEOUT,
        pid: int | None = None,
    ) -> None:
        self._lock_dir = Path(lock_dir) if lock_dir is not None else get_workspace_lock_dir()
        self._stale_timeout = stale_timeout
        self._pid = pid if pid is not None else os.getpid()
        self._hostname = socket.gethostname()

    @property
    def pid(self) -> int:
        return self._pid

    @staticmethod
    def _key(workspace_path: Path | str) -> str:
        return str(Path(workspace_path).resolve())

    def get_lock_file_path(self, workspace_path: Path | str) -> Path:
        """Record path for a workspace, keyed by its resolved path."""
        digest = hashlib.sha256(self._key(workspace_path).encode("utf-8")).hexdigest()
        return self._lock_dir / f"{digest[:16]}.lock"

    def _guard(self, record_path: Path) -> FileLock:
        self._lock_dir.mkdir(parents=True, exist_ok=True)
        return FileLock(str(record_path) + ".guard", timeout=GUARD_TIMEOUT)

    def _read(self, record_path: Path) -> LockInfo | None:
        try:
            raw = record_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return LockInfo.model_validate_json(raw)
        except ValidationError:
            log.warning("Ignoring unreadable workspace lock record %s", record_path)
            return None

    def is_lock_stale(self, info: LockInfo) -> bool:
        """Whether ``info`` describes an abandoned lock.

        Persistent locks are never stale. A transient lock is stale when it
        is older than the stale timeout, has no pid, or its process is gone.
        Liveness can only be checked for locks taken on this host.
        """
        if info.type is LockType.PERSISTENT:
            return False
        if is_lock_record_expired(info.started_at, self._stale_timeout):
            return True
        if info.pid is None:
            return True
        if info.hostname == self._hostname and not is_process_alive(info.pid):
            return True
        return False

    def acquire_lock(
        self,
        workspace_path: Path | str,
        command: str,
        lock_type: LockType = LockType.PERSISTENT,
        owner: str | None = None,
    ) -> LockInfo:
        """Lock ``workspace_path`` for this process.

        Args:
            workspace_path: Workspace directory to lock.
            command: Description of what is running, shown to other users.
            lock_type: Persistent or transient.
            owner: Optional human-friendly owner appended to the command.

        Returns:
            The record that was written.

        Raises:
            WorkspaceLockedError: A live lock is already held.
        """
        record_path = self.get_lock_file_path(workspace_path)
        if owner:
            command = f"{command} (owner: {owner})"

        with self._guard(record_path):
            existing = self._read(record_path)
            if existing is not None:
                if existing.type is LockType.PERSISTENT:
                    raise WorkspaceLockedError(
                        f"Workspace is already locked with a persistent lock "
                        f"(command: {existing.command}, host: {existing.hostname})"
                    )
                if not self.is_lock_stale(existing):
                    raise WorkspaceLockedError(
                        f"Workspace is locked by another process "
                        f"(pid {existing.pid} on {existing.hostname}, command: {existing.command})"
                    )
                log.info("Replacing stale workspace lock held by pid %s", existing.pid)

            info = LockInfo(
                type=lock_type,
                pid=self._pid,
                hostname=self._hostname,
                command=command,
                started_at=datetime.now(timezone.utc),
                workspace_path=self._key(workspace_path),
            )
            write_text_atomic(record_path, info.to_json())

        if lock_type is LockType.TRANSIENT:
            self._register_cleanup(workspace_path)
        log.debug("Locked workspace %s (%s)", workspace_path, lock_type.value)
        return info

    def release_lock(self, workspace_path: Path | str, force: bool = False) -> bool:
        """Remove the lock on ``workspace_path``.

        Without ``force`` only a transient lock held by this pid is
        released; persistent locks always need ``force``.

        Returns:
            True if a record was removed.
        """
        record_path = self.get_lock_file_path(workspace_path)
        with self._guard(record_path):
            existing = self._read(record_path)
            if existing is None:
                return False
            if not force:
                if existing.type is LockType.PERSISTENT:
                    return False
                if existing.pid != self._pid or existing.hostname != self._hostname:
                    return False
            record_path.unlink(missing_ok=True)

        self._unregister_cleanup(workspace_path)
        log.debug("Released workspace lock on %s", workspace_path)
        return True

    def get_lock_info_including_stale(self, workspace_path: Path | str) -> LockInfo | None:
        """The current record, stale or not."""
        return self._read(self.get_lock_file_path(workspace_path))

    def get_lock_info(self, workspace_path: Path | str) -> LockInfo | None:
        """The current live record. Stale transient records are cleared."""
        if self.clear_stale_lock(workspace_path):
            return None
        return self.get_lock_info_including_stale(workspace_path)

    def is_locked(self, workspace_path: Path | str) -> bool:
        return self.get_lock_info(workspace_path) is not None

    def clear_stale_lock(self, workspace_path: Path | str) -> bool:
        """Remove the record if it is stale. Returns True if one was removed."""
        record_path = self.get_lock_file_path(workspace_path)
        if not record_path.exists():
            return False

        with self._guard(record_path):
            # Re-check under the guard; the holder may have changed
            existing = self._read(record_path)
            if existing is None or not self.is_lock_stale(existing):
                return False
            record_path.unlink(missing_ok=True)

        self._unregister_cleanup(workspace_path)
        log.info("Cleared stale workspace lock on %s (pid %s)", workspace_path, existing.pid)
        return True

    def _register_cleanup(self, workspace_path: Path | str) -> None:
        key = str(self.get_lock_file_path(workspace_path))
        if key in self._cleanup_handlers:
            return

        def cleanup() -> None:
            try:
                self.release_lock(workspace_path)
            except OSError as e:
                log.warning(
                    "Failed to release workspace lock on %s at exit: %s", workspace_path, e
                )
            finally:
                self._unregister_cleanup(workspace_path)

        self._cleanup_handlers[key] = cleanup
        atexit.register(cleanup)

    def _unregister_cleanup(self, workspace_path: Path | str) -> None:
        cleanup = self._cleanup_handlers.pop(str(self.get_lock_file_path(workspace_path)), None)
        if cleanup is not None:
            atexit.unregister(cleanup)
