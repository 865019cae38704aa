"""Staleness classification for assignments and lock files.

Two independent thresholds:
- assignments go stale after days without an update (forgotten claims);
- lock markers and records go stale after minutes (crashed holders).

The classifiers are pure given their inputs; the reference time is always
passed in or taken once by the caller.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from planlock.config.schema import DEFAULT_STALE_TIMEOUT_DAYS

if TYPE_CHECKING:
    from planlock.assignments.schema import AssignmentEntry, AssignmentsDocument
    from planlock.config.schema import Config, MutexConfig


def is_stale_assignment(
    entry: AssignmentEntry,
    threshold_days: float,
    reference_time: datetime | None = None,
) -> bool:
    """True when the entry has not been updated for ``threshold_days``.

    The boundary is inclusive: an entry updated exactly ``threshold_days``
    before the reference time is stale.
    """
    if reference_time is None:
        reference_time = datetime.now(timezone.utc)
    return reference_time - entry.updated_at >= timedelta(days=threshold_days)


def get_configured_stale_timeout_days(config: Config | None) -> int:
    """Stale threshold from config, falling back to the default."""
    if config is None:
        return DEFAULT_STALE_TIMEOUT_DAYS
    days = config.assignments.stale_timeout_days
    if days <= 0:
        return DEFAULT_STALE_TIMEOUT_DAYS
    return days


def find_stale_assignments(
    document: AssignmentsDocument,
    threshold_days: float,
    reference_time: datetime | None = None,
) -> list[tuple[str, AssignmentEntry]]:
    """List ``(uuid, entry)`` pairs that are stale, oldest first."""
    if reference_time is None:
        reference_time = datetime.now(timezone.utc)
    stale = [
        (uuid, entry)
        for uuid, entry in document.assignments.items()
        if is_stale_assignment(entry, threshold_days, reference_time)
    ]
    stale.sort(key=lambda item: item[1].updated_at)
    return stale


def clean_stale_assignments(
    document: AssignmentsDocument,
    uuids: list[str],
    *,
    mutex: MutexConfig | None = None,
) -> list[str]:
    """Remove the given entries in a single write.

    ``document`` must be the snapshot the stale list was computed from. The
    write expects exactly that version, so if anything changed in between
    an AssignmentsVersionConflictError propagates and nothing is removed.

    Returns:
        The uuids actually removed (absent ones are skipped).
    """
    # Import here to avoid circular dependency (store -> mutex -> stale)
    from planlock.assignments.store import write_assignments

    removed = [uuid for uuid in uuids if uuid in document.assignments]
    if not removed:
        return []

    updated = document.next_version()
    for uuid in removed:
        del updated.assignments[uuid]

    write_assignments(updated, expected_version=document.version, mutex=mutex)
    return removed


def is_lock_marker_stale(
    lock_path: Path,
    threshold_seconds: float,
    now: float | None = None,
) -> bool:
    """True when the marker file's mtime is older than the threshold.

    A marker that has already disappeared is not stale.
    """
    try:
        mtime = lock_path.stat().st_mtime
    except FileNotFoundError:
        return False
    if now is None:
        now = time.time()
    return now - mtime > threshold_seconds


def is_lock_record_expired(
    started_at: datetime,
    max_age: timedelta,
    now: datetime | None = None,
) -> bool:
    """True when a lock record started longer than ``max_age`` ago."""
    if now is None:
        now = datetime.now(timezone.utc)
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return now - started_at > max_age
