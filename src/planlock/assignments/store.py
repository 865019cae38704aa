"""Persistence for the shared assignments document.

Every write is a read-check-write under the file mutex:

1. acquire ``assignments.json.lock``
2. re-read the persisted document
3. reject the write if its version is not the one the caller expected
4. write a temp file in the same directory and rename it over the target
5. release the lock

The version check is what makes concurrent writers safe; the mutex only
keeps them from wasting work. Nothing here retries on conflict: the caller
has to re-read and reapply its intent.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from planlock.assignments.mutex import acquire_file_lock
from planlock.assignments.schema import AssignmentsDocument
from planlock.config.paths import get_assignments_file_path, get_lock_marker_path
from planlock.config.loader import get_config
from planlock.config.schema import MutexConfig
from planlock.errors import (
    AssignmentsFileParseError,
    AssignmentsVersionConflictError,
    RepositoryMismatchError,
)
from planlock.fileio import write_text_atomic
from planlock.logging import get_logger

log = get_logger("store")


@dataclass
class PlanIdRange:
    """Inclusive range of reserved numeric plan ids."""

    start_id: int
    end_id: int


def _read_existing(file_path: Path) -> AssignmentsDocument | None:
    """Load and validate the file, or None when it does not exist."""
    try:
        raw = file_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise AssignmentsFileParseError(
            f"Failed to parse assignments file at {file_path}: {e}"
        ) from e

    try:
        return AssignmentsDocument.model_validate(data)
    except ValidationError as e:
        raise AssignmentsFileParseError(
            f"Assignments file at {file_path} failed validation: {e}"
        ) from e


def _acquire(file_path: Path, mutex: MutexConfig | None) -> Callable[[], None]:
    mutex = mutex or get_config().mutex
    return acquire_file_lock(
        get_lock_marker_path(file_path),
        timeout=mutex.timeout,
        retry_delay=mutex.retry_delay,
        stale_threshold=mutex.stale_threshold,
    )


def read_assignments(
    repository_id: str,
    repository_remote_url: str | None = None,
) -> AssignmentsDocument:
    """Read the assignments document for a repository.

    Args:
        repository_id: Repository the caller is working in.
        repository_remote_url: Used only for the fresh document returned
            when nothing has been persisted yet.

    Returns:
        The persisted document, or an unpersisted version-0 document.

    Raises:
        AssignmentsFileParseError: The file is malformed.
        RepositoryMismatchError: The file belongs to another repository.
    """
    file_path = get_assignments_file_path(repository_id)
    existing = _read_existing(file_path)
    if existing is None:
        return AssignmentsDocument.empty(repository_id, repository_remote_url)

    if existing.repository_id != repository_id:
        raise RepositoryMismatchError(repository_id, existing.repository_id)

    return existing


def write_assignments(
    document: AssignmentsDocument,
    expected_version: int | None = None,
    *,
    mutex: MutexConfig | None = None,
) -> None:
    """Persist ``document`` if the file is still at ``expected_version``.

    Args:
        document: The new document. Its ``version`` should be one more than
            the version it was derived from.
        expected_version: Version the caller believes is on disk. Defaults
            to ``document.version - 1``.
        mutex: Mutex timing; defaults to the ``mutex`` config section.

    Raises:
        AssignmentsVersionConflictError: The persisted version differs from
            ``expected_version``, is newer than ``document.version``, or the
            mutex could not be acquired in time.
        AssignmentsFileParseError: The persisted file is malformed.
    """
    try:
        validated = AssignmentsDocument.model_validate(document.to_dict())
    except ValidationError as e:
        raise AssignmentsFileParseError(f"Refusing to write invalid assignments: {e}") from e

    if expected_version is None:
        expected_version = max(0, validated.version - 1)

    file_path = get_assignments_file_path(validated.repository_id)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    release = _acquire(file_path, mutex)
    try:
        current = _read_existing(file_path)
        if current is not None and current.repository_id != validated.repository_id:
            raise RepositoryMismatchError(validated.repository_id, current.repository_id)
        current_version = current.version if current is not None else 0

        if expected_version != current_version:
            raise AssignmentsVersionConflictError(
                f"Assignments version conflict for {validated.repository_id}: "
                f"expected {expected_version}, found {current_version}"
            )

        if validated.version < current_version:
            raise AssignmentsVersionConflictError(
                f"Assignments version {validated.version} is older than persisted "
                f"version {current_version} for {validated.repository_id}"
            )

        write_text_atomic(file_path, validated.to_json())
        log.debug(
            "Wrote assignments for %s at version %d", validated.repository_id, validated.version
        )
    finally:
        release()


def remove_assignment(
    repository_id: str,
    uuid: str,
    repository_remote_url: str | None = None,
    *,
    mutex: MutexConfig | None = None,
) -> bool:
    """Delete one entry. Returns False, without writing, if it is absent."""
    document = read_assignments(repository_id, repository_remote_url)
    if uuid not in document.assignments:
        return False

    updated = document.next_version()
    del updated.assignments[uuid]
    write_assignments(updated, expected_version=document.version, mutex=mutex)
    return True


def reserve_next_plan_id(
    repository_id: str,
    local_max_id: int,
    count: int = 1,
    *,
    repository_remote_url: str | None = None,
    mutex: MutexConfig | None = None,
) -> PlanIdRange:
    """Reserve ``count`` consecutive numeric plan ids.

    The read and the write happen under one mutex hold, so concurrent
    reservations never hand out the same id.

    Args:
        repository_id: Repository to reserve in.
        local_max_id: Highest id the caller already knows about locally.
        count: How many ids to reserve.
    """
    if count < 1:
        raise ValueError("count must be at least 1")

    file_path = get_assignments_file_path(repository_id)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    release = _acquire(file_path, mutex)
    try:
        current = _read_existing(file_path)
        if current is None:
            current = AssignmentsDocument.empty(repository_id, repository_remote_url)
        elif current.repository_id != repository_id:
            raise RepositoryMismatchError(repository_id, current.repository_id)

        start_id = max(local_max_id, current.highest_plan_id or 0) + 1
        end_id = start_id + count - 1

        updated = current.next_version()
        updated.highest_plan_id = end_id
        write_text_atomic(file_path, updated.to_json())
    finally:
        release()

    log.debug("Reserved plan ids %d-%d for %s", start_id, end_id, repository_id)
    return PlanIdRange(start_id=start_id, end_id=end_id)
