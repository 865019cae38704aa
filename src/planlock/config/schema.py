"""Configuration schema dataclasses for planlock.

All fields have defaults so partial configs merge cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_STALE_TIMEOUT_DAYS = 7


@dataclass
class AssignmentsConfig:
    """Assignment bookkeeping.

    Example config.yaml:
        assignments:
          stale_timeout_days: 14
    """

    stale_timeout_days: int = DEFAULT_STALE_TIMEOUT_DAYS


@dataclass
class MutexConfig:
    """Timing for the assignments file mutex (seconds)."""

    timeout: float = 2.0  # Give up acquiring after this long
    retry_delay: float = 0.025  # Sleep between attempts
    stale_threshold: float = 300.0  # Marker older than this is reclaimed


@dataclass
class WorkspaceLockConfig:
    """Workspace execution lock settings."""

    stale_timeout_minutes: int = 24 * 60


@dataclass
class AutoClaimConfig:
    """Whether agent runs claim their plan automatically."""

    enabled: bool = True


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object."""

    assignments: AssignmentsConfig = field(default_factory=AssignmentsConfig)
    mutex: MutexConfig = field(default_factory=MutexConfig)
    workspace_lock: WorkspaceLockConfig = field(default_factory=WorkspaceLockConfig)
    auto_claim: AutoClaimConfig = field(default_factory=AutoClaimConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level keys, kept for extensions
    extra: dict[str, Any] = field(default_factory=dict)
