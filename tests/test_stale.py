"""Tests for stale assignment and lock detection."""

from __future__ import annotations

import os
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from planlock.assignments.claims import claim_plan
from planlock.assignments.schema import AssignmentEntry
from planlock.assignments.stale import (
    clean_stale_assignments,
    find_stale_assignments,
    get_configured_stale_timeout_days,
    is_lock_marker_stale,
    is_lock_record_expired,
    is_stale_assignment,
)
from planlock.assignments.store import read_assignments
from planlock.config.loader import dict_to_config
from planlock.errors import AssignmentsVersionConflictError

NOW = datetime(2026, 5, 20, 9, 30, tzinfo=timezone.utc)


def _entry(updated_at: datetime) -> AssignmentEntry:
    return AssignmentEntry(
        workspace_paths=["/work/w1"],
        assigned_at=updated_at,
        updated_at=updated_at,
    )


class TestIsStaleAssignment:
    """The staleness boundary is inclusive."""

    def test_just_under_threshold(self) -> None:
        entry = _entry(NOW - timedelta(days=7) + timedelta(milliseconds=1))
        assert not is_stale_assignment(entry, 7, NOW)

    def test_exactly_at_threshold(self) -> None:
        entry = _entry(NOW - timedelta(days=7))
        assert is_stale_assignment(entry, 7, NOW)

    def test_just_over_threshold(self) -> None:
        entry = _entry(NOW - timedelta(days=7) - timedelta(milliseconds=1))
        assert is_stale_assignment(entry, 7, NOW)

    def test_fresh_entry(self) -> None:
        assert not is_stale_assignment(_entry(NOW), 7, NOW)

    def test_defaults_to_current_time(self) -> None:
        entry = _entry(datetime.now(timezone.utc) - timedelta(days=30))
        assert is_stale_assignment(entry, 7)


class TestConfiguredTimeout:
    def test_default_without_config(self) -> None:
        assert get_configured_stale_timeout_days(None) == 7

    def test_from_config(self) -> None:
        config = dict_to_config({"assignments": {"stale_timeout_days": 3}})
        assert get_configured_stale_timeout_days(config) == 3


class TestCleanStale:
    """Bulk removal of stale assignments."""

    def _seed(self, repository_id: str) -> None:
        claim_plan("old", "/work/w1", "alice", repository_id=repository_id, now=NOW - timedelta(days=10))
        claim_plan("older", "/work/w2", "bob", repository_id=repository_id, now=NOW - timedelta(days=20))
        claim_plan("fresh", "/work/w3", "carol", repository_id=repository_id, now=NOW - timedelta(days=1))

    def test_find_sorted_oldest_first(self, repository_id: str) -> None:
        self._seed(repository_id)
        document = read_assignments(repository_id)

        stale = find_stale_assignments(document, 7, NOW)
        assert [uuid for uuid, _ in stale] == ["older", "old"]

    def test_clean_removes_in_one_write(self, repository_id: str) -> None:
        self._seed(repository_id)
        document = read_assignments(repository_id)
        stale = find_stale_assignments(document, 7, NOW)

        removed = clean_stale_assignments(document, [uuid for uuid, _ in stale])

        assert removed == ["older", "old"]
        after = read_assignments(repository_id)
        assert list(after.assignments) == ["fresh"]
        assert after.version == document.version + 1

    def test_clean_nothing_does_not_write(self, repository_id: str) -> None:
        self._seed(repository_id)
        document = read_assignments(repository_id)
        assert clean_stale_assignments(document, ["missing"]) == []
        assert read_assignments(repository_id).version == document.version

    def test_clean_aborts_when_document_changed(self, repository_id: str) -> None:
        self._seed(repository_id)
        document = read_assignments(repository_id)
        stale = find_stale_assignments(document, 7, NOW)

        claim_plan("old", "/work/w9", "dave", repository_id=repository_id)

        with pytest.raises(AssignmentsVersionConflictError):
            clean_stale_assignments(document, [uuid for uuid, _ in stale])
        after = read_assignments(repository_id)
        assert set(after.assignments) == {"old", "older", "fresh"}


class TestLockStaleness:
    def test_marker_older_than_threshold(self, tmp_path: Path) -> None:
        marker = tmp_path / "a.lock"
        marker.write_text("{}", encoding="utf-8")
        old = time.time() - 301
        os.utime(marker, (old, old))
        assert is_lock_marker_stale(marker, 300)

    def test_fresh_marker(self, tmp_path: Path) -> None:
        marker = tmp_path / "a.lock"
        marker.write_text("{}", encoding="utf-8")
        assert not is_lock_marker_stale(marker, 300)

    def test_missing_marker(self, tmp_path: Path) -> None:
        assert not is_lock_marker_stale(tmp_path / "gone.lock", 300)

    def test_record_expiry(self) -> None:
        started = NOW - timedelta(hours=25)
        assert is_lock_record_expired(started, timedelta(hours=24), NOW)
        assert not is_lock_record_expired(NOW - timedelta(hours=1), timedelta(hours=24), NOW)

    def test_naive_record_start_is_utc(self) -> None:
        started = (NOW - timedelta(hours=25)).replace(tzinfo=None)
        assert is_lock_record_expired(started, timedelta(hours=24), NOW)
