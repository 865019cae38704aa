"""Claim and release transitions on a single assignment entry.

Claims are collaborative, not exclusive: claiming a plan that another
workspace or user already holds succeeds and reports warnings naming the
other holders.

Each call is one read -> mutate -> write cycle against the store, writing
with the version it read. A concurrent writer makes the write fail with
AssignmentsVersionConflictError; these functions do not retry. A caller
that wants to retry must call them again so the change is reapplied to the
latest document instead of to the stale entry computed the first time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from planlock.assignments.schema import AssignmentEntry, utc_now
from planlock.assignments.store import read_assignments, write_assignments
from planlock.config.schema import AutoClaimConfig, MutexConfig
from planlock.logging import get_logger

log = get_logger("claims")


@dataclass
class ClaimPlanResult:
    """Outcome of claim_plan."""

    created: bool = False
    added_workspace: bool = False
    added_user: bool = False
    persisted: bool = False
    warnings: list[str] = field(default_factory=list)
    entry: AssignmentEntry | None = None
    version: int = 0


@dataclass
class ReleasePlanResult:
    """Outcome of release_plan."""

    existed: bool = False
    removed_workspace: bool = False
    removed_user: bool = False
    entry_removed: bool = False
    persisted: bool = False
    warnings: list[str] = field(default_factory=list)
    remaining_entry: AssignmentEntry | None = None
    version: int = 0


def _others(values: list[str], exclude: str | None) -> list[str]:
    return [value for value in values if value != exclude]


def claim_plan(
    uuid: str,
    workspace_path: str,
    user: str | None = None,
    *,
    repository_id: str,
    repository_remote_url: str | None = None,
    plan_id: int | None = None,
    status: str | None = None,
    now: datetime | None = None,
    mutex: MutexConfig | None = None,
) -> ClaimPlanResult:
    """Add ``workspace_path`` (and ``user``) to the plan's assignment.

    Args:
        uuid: Plan UUID, the assignment key.
        workspace_path: Absolute path of the claiming workspace.
        user: Claiming user, if known.
        repository_id: Repository the plan belongs to.
        repository_remote_url: Recorded when the document is first created.
        plan_id: Numeric plan id to cache on the entry.
        status: Plan status to record on the entry.
        now: Timestamp to record (defaults to the current time).
        mutex: Mutex timing for the write; defaults to the global config.

    Returns:
        ClaimPlanResult. ``persisted`` is False when the claim was already
        fully in place, in which case nothing was written.

    Raises:
        AssignmentsVersionConflictError: Another process wrote first.
    """
    now = now or utc_now()
    document = read_assignments(repository_id, repository_remote_url)
    result = ClaimPlanResult(version=document.version)

    updated = document.next_version()
    entry = updated.assignments.get(uuid)
    changed = False

    if entry is None:
        entry = AssignmentEntry(
            plan_id=plan_id,
            workspace_paths=[workspace_path],
            workspace_owners={workspace_path: user} if user else {},
            users=[user] if user else [],
            status=status,
            assigned_at=now,
            updated_at=now,
        )
        updated.assignments[uuid] = entry
        result.created = True
        result.added_workspace = True
        result.added_user = bool(user)
        changed = True
    else:
        other_workspaces = _others(entry.workspace_paths, workspace_path)
        if other_workspaces:
            result.warnings.append(
                f"Plan is already claimed in other workspaces: {', '.join(other_workspaces)}"
            )
        other_users = _others(entry.all_users(), user)
        if other_users:
            result.warnings.append(
                f"Plan is already claimed by other users: {', '.join(other_users)}"
            )

        if workspace_path not in entry.workspace_paths:
            entry.workspace_paths.append(workspace_path)
            result.added_workspace = True
            changed = True

        if user:
            if user not in entry.users:
                entry.users.append(user)
                result.added_user = True
                changed = True
            if entry.workspace_owners.get(workspace_path) != user:
                entry.workspace_owners[workspace_path] = user
                changed = True

        if plan_id is not None and entry.plan_id != plan_id:
            entry.plan_id = plan_id
            changed = True

        if status is not None and entry.status != status:
            entry.status = status
            changed = True

    result.entry = entry
    if not changed:
        return result

    entry.updated_at = now
    write_assignments(updated, expected_version=document.version, mutex=mutex)
    result.persisted = True
    result.version = updated.version
    log.info("Claimed plan %s in %s (version %d)", uuid, workspace_path, updated.version)
    return result


def release_plan(
    uuid: str,
    workspace_path: str | None = None,
    user: str | None = None,
    *,
    repository_id: str,
    repository_remote_url: str | None = None,
    now: datetime | None = None,
    mutex: MutexConfig | None = None,
) -> ReleasePlanResult:
    """Remove ``workspace_path`` and ``user`` from the plan's assignment.

    The user is only removed when the workspace was actually released (or
    no workspace was given) and the user does not still own another
    workspace on the entry. The entry is deleted once it has no
    workspaces and no users left.

    Raises:
        AssignmentsVersionConflictError: Another process wrote first.
    """
    now = now or utc_now()
    document = read_assignments(repository_id, repository_remote_url)
    result = ReleasePlanResult(version=document.version)

    if uuid not in document.assignments:
        return result
    result.existed = True

    updated = document.next_version()
    entry = updated.assignments[uuid]

    if workspace_path is not None and workspace_path in entry.workspace_paths:
        entry.workspace_paths.remove(workspace_path)
        entry.workspace_owners.pop(workspace_path, None)
        result.removed_workspace = True

    may_clear_user = workspace_path is None or result.removed_workspace
    if user is not None and may_clear_user and user in entry.users:
        if user not in entry.workspace_owners.values():
            entry.users.remove(user)
            result.removed_user = True

    if not result.removed_workspace and not result.removed_user:
        result.remaining_entry = document.assignments[uuid]
        return result

    if entry.is_empty():
        del updated.assignments[uuid]
        result.entry_removed = True
    else:
        entry.updated_at = now
        result.remaining_entry = entry
        if entry.workspace_paths:
            result.warnings.append(
                f"Plan remains claimed in other workspaces: {', '.join(entry.workspace_paths)}"
            )
        remaining_users = entry.all_users()
        if remaining_users:
            result.warnings.append(
                f"Plan remains claimed by other users: {', '.join(remaining_users)}"
            )

    write_assignments(updated, expected_version=document.version, mutex=mutex)
    result.persisted = True
    result.version = updated.version
    log.info("Released plan %s (version %d)", uuid, updated.version)
    return result


def auto_claim_plan(
    uuid: str,
    workspace_path: str,
    user: str | None,
    config: AutoClaimConfig,
    *,
    repository_id: str,
    repository_remote_url: str | None = None,
    plan_id: int | None = None,
    mutex: MutexConfig | None = None,
) -> ClaimPlanResult | None:
    """Claim on behalf of an agent run, if auto-claim is enabled.

    Returns None without touching the store when ``config.enabled`` is
    False.
    """
    if not config.enabled:
        log.debug("Auto-claim disabled; not claiming %s", uuid)
        return None
    return claim_plan(
        uuid,
        workspace_path,
        user,
        repository_id=repository_id,
        repository_remote_url=repository_remote_url,
        plan_id=plan_id,
        status="in_progress",
        mutex=mutex,
    )


def _plan_label(uuid: str, plan_id: int | None) -> str:
    return str(plan_id) if plan_id is not None else uuid


def describe_claim_outcome(
    result: ClaimPlanResult,
    uuid: str,
    workspace_path: str,
    user: str | None,
    plan_id: int | None = None,
) -> str | None:
    """One status line for a claim, or None if nothing changed."""
    if not result.persisted:
        return None
    if plan_id is None and result.entry is not None:
        plan_id = result.entry.plan_id
    label = _plan_label(uuid, plan_id)

    details: list[str] = []
    if result.created:
        details.append("created assignment")
    elif result.added_workspace:
        details.append("added workspace")
    if result.added_user and user:
        details.append(f"added user {user}")
    if not details:
        details.append("updated assignment")

    return f"Claimed plan {label} in workspace {workspace_path} ({', '.join(details)})"


def describe_release_outcome(
    result: ReleasePlanResult,
    uuid: str,
    workspace_path: str | None,
    user: str | None,
    plan_id: int | None = None,
) -> str:
    """One status line for a release."""
    if plan_id is None and result.remaining_entry is not None:
        plan_id = result.remaining_entry.plan_id
    label = _plan_label(uuid, plan_id)

    if not result.existed:
        return f"Plan {label} has no assignments to release"
    if not result.persisted:
        if workspace_path is not None:
            return f"Plan {label} is not claimed in workspace {workspace_path}"
        return f"Plan {label} is not claimed by {user}"

    details: list[str] = []
    if result.removed_workspace:
        details.append("removed workspace")
    if result.removed_user and user:
        details.append(f"removed user {user}")

    where = f" from workspace {workspace_path}" if workspace_path else ""
    if result.entry_removed:
        return f"Released plan {label}{where} ({', '.join(details)})"
    where = f" in workspace {workspace_path}" if workspace_path else ""
    return f"Updated assignment for plan {label}{where} ({', '.join(details)})"
