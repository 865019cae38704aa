"""Short-lived cross-process mutex for shared files.

The lock is a marker file created with O_EXCL next to the file it guards.
Its existence is the lock; the JSON payload (pid, createdAt) is only there
to help a human work out who is holding it. A process that dies while
holding the marker is recovered from by the next acquirer once the marker's
mtime is older than the stale threshold.

Advisory only: it serializes writers that use it and nothing else.
"""

from __future__ import annotations

import json
import os
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from planlock.assignments.stale import is_lock_marker_stale
from planlock.errors import LockTimeoutError
from planlock.logging import get_logger

log = get_logger("mutex")

LOCK_RETRY_DELAY = 0.025
LOCK_ACQUIRE_TIMEOUT = 2.0
LOCK_STALE_THRESHOLD = 5 * 60.0


def _create_marker(lock_path: Path) -> None:
    fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        payload = {"pid": os.getpid(), "createdAt": datetime.now(timezone.utc).isoformat()}
        handle.write(json.dumps(payload))


def acquire_file_lock(
    lock_path: Path | str,
    *,
    timeout: float = LOCK_ACQUIRE_TIMEOUT,
    retry_delay: float = LOCK_RETRY_DELAY,
    stale_threshold: float = LOCK_STALE_THRESHOLD,
) -> Callable[[], None]:
    """Acquire the marker-file lock at ``lock_path``.

    Args:
        lock_path: Marker file to create.
        timeout: Seconds to keep trying before giving up.
        retry_delay: Seconds to sleep between attempts.
        stale_threshold: Age in seconds after which an existing marker is
            considered abandoned and removed.

    Returns:
        A function that releases the lock. Calling it more than once is
        harmless.

    Raises:
        LockTimeoutError: The lock was still held when the deadline passed.
    """
    path = Path(lock_path)
    deadline = time.monotonic() + timeout

    while True:
        try:
            _create_marker(path)
        except FileExistsError:
            pass
        else:
            log.debug("Acquired lock %s", path)
            return _make_release(path)

        if is_lock_marker_stale(path, stale_threshold) and _reclaim_stale_marker(
            path, stale_threshold
        ):
            continue

        if time.monotonic() >= deadline:
            raise LockTimeoutError(str(path))

        time.sleep(retry_delay)


def _reclaim_stale_marker(path: Path, stale_threshold: float) -> bool:
    """Move a stale marker aside and delete it. Returns True once it is gone.

    Another acquirer may have reclaimed the marker and created a fresh one
    since it was judged stale. The age is checked again on the moved-aside
    file, and a marker that turns out to be fresh is linked back in place.
    """
    aside = path.with_name(f"{path.name}.stale.{uuid.uuid4().hex[:8]}")
    try:
        os.replace(path, aside)
    except FileNotFoundError:
        return True

    if is_lock_marker_stale(aside, stale_threshold):
        aside.unlink(missing_ok=True)
        log.warning("Removed stale lock %s", path)
        return True

    try:
        os.link(aside, path)
    except FileExistsError:
        log.warning("Lock %s was taken while restoring a live marker", path)
    aside.unlink(missing_ok=True)
    return False


def _make_release(path: Path) -> Callable[[], None]:
    released = False

    def release() -> None:
        nonlocal released
        if released:
            return
        released = True
        path.unlink(missing_ok=True)
        log.debug("Released lock %s", path)

    return release


@contextmanager
def file_lock(
    lock_path: Path | str,
    *,
    timeout: float = LOCK_ACQUIRE_TIMEOUT,
    retry_delay: float = LOCK_RETRY_DELAY,
    stale_threshold: float = LOCK_STALE_THRESHOLD,
) -> Iterator[None]:
    """Context manager form of :func:`acquire_file_lock`."""
    release = acquire_file_lock(
        lock_path,
        timeout=timeout,
        retry_delay=retry_delay,
        stale_threshold=stale_threshold,
    )
    try:
        yield
    finally:
        release()
