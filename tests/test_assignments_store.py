"""Tests for the assignments document store."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from planlock.assignments.schema import AssignmentEntry, AssignmentsDocument
from planlock.assignments.store import (
    read_assignments,
    remove_assignment,
    reserve_next_plan_id,
    write_assignments,
)
from planlock.config.paths import get_assignments_file_path
from planlock.config.schema import MutexConfig
from planlock.errors import (
    AssignmentsFileParseError,
    AssignmentsVersionConflictError,
    LockTimeoutError,
    RepositoryMismatchError,
)

PLAN_UUID = "2f1c6a0e-8d3b-4c55-9a61-0b8e5d7f4c21"


def _entry(workspace: str = "/work/w1", user: str | None = "alice") -> AssignmentEntry:
    stamp = datetime(2026, 1, 17, 10, 0, tzinfo=timezone.utc)
    return AssignmentEntry(
        plan_id=12,
        workspace_paths=[workspace],
        workspace_owners={workspace: user} if user else {},
        users=[user] if user else [],
        status="in_progress",
        assigned_at=stamp,
        updated_at=stamp,
    )


def _write_raw(repository_id: str, content: str) -> Path:
    path = get_assignments_file_path(repository_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestAssignmentsSchema:
    """Tests for the document model."""

    def test_lists_behave_as_sets(self) -> None:
        entry = AssignmentEntry(workspacePaths=["/a", "/a", " ", "/b"], users=["bob", "bob"])
        assert entry.workspace_paths == ["/a", "/b"]
        assert entry.users == ["bob"]

    def test_naive_timestamps_are_utc(self) -> None:
        entry = AssignmentEntry(updatedAt="2026-01-17T10:00:00")
        assert entry.updated_at.tzinfo is not None

    def test_camel_case_serialization(self) -> None:
        document = AssignmentsDocument.empty("repo", "git@example.com:acme/app.git")
        document.assignments[PLAN_UUID] = _entry()
        data = document.to_dict()

        assert data["repositoryId"] == "repo"
        assert data["repositoryRemoteUrl"] == "git@example.com:acme/app.git"
        entry = data["assignments"][PLAN_UUID]
        assert entry["planId"] == 12
        assert entry["workspacePaths"] == ["/work/w1"]
        assert entry["workspaceOwners"] == {"/work/w1": "alice"}
        assert "assignedAt" in entry and "updatedAt" in entry

    def test_remote_url_always_written(self) -> None:
        data = AssignmentsDocument.empty("repo").to_dict()
        assert "repositoryRemoteUrl" in data
        assert data["repositoryRemoteUrl"] is None

    def test_unknown_fields_preserved(self) -> None:
        document = AssignmentsDocument.model_validate(
            {"repositoryId": "repo", "version": 1, "assignments": {}, "futureField": [1, 2]}
        )
        assert document.to_dict()["futureField"] == [1, 2]

    def test_next_version_is_a_copy(self) -> None:
        document = AssignmentsDocument.empty("repo")
        document.assignments[PLAN_UUID] = _entry()
        updated = document.next_version()
        updated.assignments[PLAN_UUID].users.append("bob")

        assert updated.version == 1
        assert document.version == 0
        assert document.assignments[PLAN_UUID].users == ["alice"]


class TestReadAssignments:
    """Reading the shared document."""

    def test_missing_file_returns_empty_document(self, repository_id: str) -> None:
        document = read_assignments(repository_id, "https://example.com/acme/app.git")

        assert document.version == 0
        assert document.assignments == {}
        assert document.repository_remote_url == "https://example.com/acme/app.git"
        assert not get_assignments_file_path(repository_id).exists()

    def test_round_trip(self, repository_id: str) -> None:
        document = AssignmentsDocument.empty(repository_id).next_version()
        document.assignments[PLAN_UUID] = _entry()
        write_assignments(document, expected_version=0)

        loaded = read_assignments(repository_id)
        assert loaded.version == 1
        assert loaded.assignments[PLAN_UUID] == document.assignments[PLAN_UUID]

    def test_malformed_json(self, repository_id: str) -> None:
        _write_raw(repository_id, "{not json")
        with pytest.raises(AssignmentsFileParseError, match="Failed to parse"):
            read_assignments(repository_id)

    def test_schema_violation(self, repository_id: str) -> None:
        _write_raw(repository_id, json.dumps({"repositoryId": repository_id, "version": -1}))
        with pytest.raises(AssignmentsFileParseError):
            read_assignments(repository_id)

    def test_malformed_file_is_left_untouched(self, repository_id: str) -> None:
        path = _write_raw(repository_id, "{not json")
        with pytest.raises(AssignmentsFileParseError):
            read_assignments(repository_id)
        assert path.read_text(encoding="utf-8") == "{not json"

    def test_repository_mismatch(self, repository_id: str) -> None:
        _write_raw(repository_id, json.dumps({"repositoryId": "other", "version": 1}))
        with pytest.raises(RepositoryMismatchError) as exc_info:
            read_assignments(repository_id)
        assert str(exc_info.value) == (
            f"Assignments file repositoryId mismatch: expected {repository_id}, found other"
        )
        assert isinstance(exc_info.value, AssignmentsFileParseError)


class TestWriteAssignments:
    """Optimistic-concurrency writes."""

    def test_written_file_is_pretty_json(self, repository_id: str) -> None:
        write_assignments(AssignmentsDocument.empty(repository_id).next_version())
        content = get_assignments_file_path(repository_id).read_text(encoding="utf-8")
        assert content.endswith("\n")
        assert content.startswith("{\n  ")

    def test_expected_version_defaults_to_previous(self, repository_id: str) -> None:
        first = AssignmentsDocument.empty(repository_id).next_version()
        write_assignments(first)
        write_assignments(first.next_version())
        assert read_assignments(repository_id).version == 2

    def test_stale_expected_version_conflicts(self, repository_id: str) -> None:
        base = read_assignments(repository_id)
        write_assignments(base.next_version(), expected_version=base.version)

        with pytest.raises(AssignmentsVersionConflictError):
            write_assignments(base.next_version(), expected_version=base.version)
        assert read_assignments(repository_id).version == 1

    def test_version_regression_rejected(self, repository_id: str) -> None:
        document = AssignmentsDocument.empty(repository_id)
        document.version = 3
        write_assignments(document, expected_version=0)

        regressed = read_assignments(repository_id)
        regressed.version = 2
        with pytest.raises(AssignmentsVersionConflictError):
            write_assignments(regressed, expected_version=3)

    def test_no_temp_files_left_behind(self, repository_id: str) -> None:
        write_assignments(AssignmentsDocument.empty(repository_id).next_version())
        directory = get_assignments_file_path(repository_id).parent
        assert sorted(p.name for p in directory.iterdir()) == ["assignments.json"]

    def test_lock_timeout_surfaces_as_conflict(self, repository_id: str) -> None:
        path = get_assignments_file_path(repository_id)
        path.parent.mkdir(parents=True)
        marker = path.with_name("assignments.json.lock")
        marker.write_text("{}", encoding="utf-8")

        with pytest.raises(LockTimeoutError):
            write_assignments(
                AssignmentsDocument.empty(repository_id).next_version(),
                mutex=MutexConfig(timeout=0.05, retry_delay=0.01),
            )
        assert not path.exists()

    def test_writing_over_other_repository_rejected(self, repository_id: str) -> None:
        _write_raw(repository_id, json.dumps({"repositoryId": "other", "version": 0}))
        with pytest.raises(RepositoryMismatchError):
            write_assignments(AssignmentsDocument.empty(repository_id).next_version())


class TestRemoveAssignment:
    def test_removes_entry(self, repository_id: str) -> None:
        document = AssignmentsDocument.empty(repository_id).next_version()
        document.assignments[PLAN_UUID] = _entry()
        write_assignments(document)

        assert remove_assignment(repository_id, PLAN_UUID) is True
        loaded = read_assignments(repository_id)
        assert PLAN_UUID not in loaded.assignments
        assert loaded.version == 2

    def test_missing_entry_is_noop(self, repository_id: str) -> None:
        assert remove_assignment(repository_id, PLAN_UUID) is False
        assert not get_assignments_file_path(repository_id).exists()


class TestReservePlanIds:
    """Numeric plan id reservation."""

    def test_starts_after_local_max(self, repository_id: str) -> None:
        reserved = reserve_next_plan_id(repository_id, local_max_id=41)
        assert (reserved.start_id, reserved.end_id) == (42, 42)
        assert read_assignments(repository_id).highest_plan_id == 42

    def test_starts_after_shared_max(self, repository_id: str) -> None:
        reserve_next_plan_id(repository_id, local_max_id=10, count=5)
        reserved = reserve_next_plan_id(repository_id, local_max_id=3, count=2)
        assert (reserved.start_id, reserved.end_id) == (16, 17)

    def test_bumps_version(self, repository_id: str) -> None:
        reserve_next_plan_id(repository_id, local_max_id=0)
        reserve_next_plan_id(repository_id, local_max_id=0)
        assert read_assignments(repository_id).version == 2

    def test_count_must_be_positive(self, repository_id: str) -> None:
        with pytest.raises(ValueError):
            reserve_next_plan_id(repository_id, local_max_id=0, count=0)

    def test_concurrent_reservations_never_overlap(self, repository_id: str) -> None:
        results: list[tuple[int, int]] = []
        errors: list[Exception] = []
        mutex = MutexConfig(timeout=30.0, retry_delay=0.001)

        def reserve() -> None:
            try:
                for _ in range(5):
                    reserved = reserve_next_plan_id(repository_id, 0, count=2, mutex=mutex)
                    results.append((reserved.start_id, reserved.end_id))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=reserve) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        ids = [i for start, end in results for i in range(start, end + 1)]
        assert len(ids) == len(set(ids)) == 40
        assert read_assignments(repository_id).highest_plan_id == 40
