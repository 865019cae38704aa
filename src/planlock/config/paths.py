"""Platform-aware path resolution for shared state and config.

All processes must agree on these paths: the assignments mutex is a marker
file next to the assignments file, so two processes computing different
paths for one repository would never see each other's lock.

Layout under the config root:
- Windows: %APPDATA%/planlock
- Unix: $XDG_CONFIG_HOME/planlock, else ~/.config/planlock

    <root>/config.yaml                          user config
    <root>/shared/<repositoryId>/assignments.json
    <root>/locks/<digest>.lock                  workspace execution locks
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

APP_NAME = "planlock"
CONFIG_FILENAME = "config.yaml"
PROJECT_DIR_NAME = ".planlock"
ASSIGNMENTS_FILENAME = "assignments.json"
SHARED_DIR_NAME = "shared"
LOCKS_DIR_NAME = "locks"


def get_config_root() -> Path:
    """Get the per-user configuration root."""
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME
        return Path.home() / "AppData" / "Roaming" / APP_NAME

    xdg_config = os.environ.get("XDG_CONFIG_HOME", "").strip()
    if xdg_config:
        return Path(xdg_config) / APP_NAME

    return Path.home() / ".config" / APP_NAME


def get_shared_dir(repository_id: str) -> Path:
    """Directory holding the shared state for one repository."""
    return get_config_root() / SHARED_DIR_NAME / repository_id


def get_assignments_file_path(repository_id: str) -> Path:
    """Path of the assignments document for a repository.

    Args:
        repository_id: Stable repository identifier.

    Returns:
        ``<configRoot>/shared/<repositoryId>/assignments.json``
    """
    if not repository_id:
        raise ValueError("repository_id must not be empty")
    return get_shared_dir(repository_id) / ASSIGNMENTS_FILENAME


def get_lock_marker_path(file_path: Path) -> Path:
    """Mutex marker path for a shared file (``<file>.lock``)."""
    return file_path.with_name(file_path.name + ".lock")


def get_workspace_lock_dir() -> Path:
    """Directory holding workspace execution lock records."""
    return get_config_root() / LOCKS_DIR_NAME


def get_user_config_path() -> Path:
    """User-level config file (may not exist)."""
    return get_config_root() / CONFIG_FILENAME


def get_project_config_path(project_root: str) -> Path:
    """Project-level config file (may not exist)."""
    return Path(project_root) / PROJECT_DIR_NAME / CONFIG_FILENAME


def get_config_paths(project_root: str | None = None) -> list[Path]:
    """Get all config paths in priority order (lowest to highest)."""
    paths = [get_user_config_path()]
    if project_root:
        paths.append(get_project_config_path(project_root))
    return paths
