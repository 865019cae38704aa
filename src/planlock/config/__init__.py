"""Configuration management for planlock.

Provides hierarchical YAML-based configuration with:
- User-level config (<configRoot>/config.yaml)
- Project-level config (<repo>/.planlock/config.yaml)
- Environment variable overrides (highest priority)

Example usage:
    from planlock.config import load_config

    config = load_config(project_root="/path/to/repo")
    print(config.assignments.stale_timeout_days)
"""

from planlock.config.loader import (
    get_config,
    load_config,
    reset_config,
)
from planlock.config.paths import (
    get_assignments_file_path,
    get_config_paths,
    get_config_root,
    get_project_config_path,
    get_user_config_path,
    get_workspace_lock_dir,
)
from planlock.config.schema import (
    AssignmentsConfig,
    AutoClaimConfig,
    Config,
    LoggingConfig,
    MutexConfig,
    WorkspaceLockConfig,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    # Schema types
    "AssignmentsConfig",
    "AutoClaimConfig",
    "LoggingConfig",
    "MutexConfig",
    "WorkspaceLockConfig",
    # Path utilities
    "get_assignments_file_path",
    "get_config_paths",
    "get_config_root",
    "get_project_config_path",
    "get_user_config_path",
    "get_workspace_lock_dir",
]
