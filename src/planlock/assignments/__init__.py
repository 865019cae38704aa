"""Shared plan assignments: storage, claims, and staleness."""

from planlock.assignments.claims import (
    ClaimPlanResult,
    ReleasePlanResult,
    auto_claim_plan,
    claim_plan,
    describe_claim_outcome,
    describe_release_outcome,
    release_plan,
)
from planlock.assignments.identity import (
    RepositoryIdentity,
    get_repository_identity,
    get_user_identity,
)
from planlock.assignments.mutex import acquire_file_lock, file_lock
from planlock.assignments.schema import AssignmentEntry, AssignmentsDocument
from planlock.assignments.stale import (
    clean_stale_assignments,
    find_stale_assignments,
    get_configured_stale_timeout_days,
    is_stale_assignment,
)
from planlock.assignments.store import (
    PlanIdRange,
    read_assignments,
    remove_assignment,
    reserve_next_plan_id,
    write_assignments,
)

__all__ = [
    # Schema
    "AssignmentEntry",
    "AssignmentsDocument",
    # Store
    "PlanIdRange",
    "read_assignments",
    "write_assignments",
    "remove_assignment",
    "reserve_next_plan_id",
    # Mutex
    "acquire_file_lock",
    "file_lock",
    # Claims
    "ClaimPlanResult",
    "ReleasePlanResult",
    "claim_plan",
    "release_plan",
    "auto_claim_plan",
    "describe_claim_outcome",
    "describe_release_outcome",
    # Staleness
    "is_stale_assignment",
    "find_stale_assignments",
    "clean_stale_assignments",
    "get_configured_stale_timeout_days",
    # Identity
    "RepositoryIdentity",
    "get_repository_identity",
    "get_user_identity",
]
