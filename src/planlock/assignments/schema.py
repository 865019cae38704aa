"""Data schemas for the shared assignments document.

The document is persisted as camelCase JSON; Python code uses the
snake_case field names. Entries are keyed by plan UUID. ``plan_id`` is a
denormalized cache of the numeric plan id and may be stale.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _unique_nonblank(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        trimmed = value.strip()
        if trimmed and trimmed not in seen:
            seen.add(trimmed)
            result.append(trimmed)
    return result


class AssignmentsModel(BaseModel):
    """Base model: accepts snake_case or camelCase, keeps unknown keys."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AssignmentEntry(AssignmentsModel):
    """Claim record for one plan."""

    plan_id: int | None = Field(default=None, alias="planId")
    workspace_paths: list[str] = Field(default_factory=list, alias="workspacePaths")
    workspace_owners: dict[str, str] = Field(default_factory=dict, alias="workspaceOwners")
    users: list[str] = Field(default_factory=list)
    status: str | None = None
    assigned_at: datetime = Field(default_factory=utc_now, alias="assignedAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    @field_validator("workspace_paths", "users")
    @classmethod
    def _as_set(cls, values: list[str]) -> list[str]:
        return _unique_nonblank(values)

    @field_validator("assigned_at", "updated_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        # Naive timestamps are treated as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_empty(self) -> bool:
        """An entry with no workspaces and no users must not be stored."""
        return not self.workspace_paths and not self.users

    def all_users(self) -> list[str]:
        """Users plus workspace owners, deduplicated in display order."""
        return _unique_nonblank([*self.users, *self.workspace_owners.values()])


class AssignmentsDocument(AssignmentsModel):
    """The versioned per-repository assignments file."""

    repository_id: str = Field(alias="repositoryId", min_length=1)
    repository_remote_url: str | None = Field(default=None, alias="repositoryRemoteUrl")
    version: int = Field(default=0, ge=0)
    assignments: dict[str, AssignmentEntry] = Field(default_factory=dict)
    highest_plan_id: int | None = Field(default=None, alias="highestPlanId", ge=0)

    @classmethod
    def empty(
        cls, repository_id: str, repository_remote_url: str | None = None
    ) -> AssignmentsDocument:
        """Fresh, unpersisted document at version 0."""
        return cls(
            repository_id=repository_id,
            repository_remote_url=repository_remote_url,
            version=0,
            assignments={},
        )

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        # Informational, but always present in the file
        data.setdefault("repositoryRemoteUrl", None)
        return data

    def to_json(self) -> str:
        """Pretty-printed JSON terminated with a newline."""
        return json.dumps(self.to_dict(), indent=2) + "\n"

    def next_version(self) -> AssignmentsDocument:
        """Deep copy with the version bumped, ready to mutate and write."""
        copy = self.model_copy(deep=True)
        copy.version = self.version + 1
        return copy
