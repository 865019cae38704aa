"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching with reset support
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from planlock.config.merge import merge_configs
from planlock.config.paths import get_config_paths
from planlock.config.schema import (
    DEFAULT_STALE_TIMEOUT_DAYS,
    AssignmentsConfig,
    AutoClaimConfig,
    Config,
    LoggingConfig,
    MutexConfig,
    WorkspaceLockConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("planlock.config")

_cached_config: Config | None = None

_FALSE_VALUES = {"", "0", "false", "no", "off"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid.

    A broken config file should not stop claim/release from working, so
    errors are logged and the layer is skipped.
    """
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def _env_flag(value: str) -> bool:
    return value.strip().lower() not in _FALSE_VALUES


def env_overrides() -> dict[str, Any]:
    """Build config dict from environment variables (highest priority)."""
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("PLANLOCK_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    disable_auto_claim = os.environ.get("PLANLOCK_DISABLE_AUTO_CLAIM")
    if disable_auto_claim is not None and _env_flag(disable_auto_claim):
        overrides.setdefault("auto_claim", {})["enabled"] = False

    stale_days = os.environ.get("PLANLOCK_STALE_TIMEOUT_DAYS")
    if stale_days:
        try:
            overrides.setdefault("assignments", {})["stale_timeout_days"] = int(stale_days)
        except ValueError:
            _log.warning("Ignoring non-integer PLANLOCK_STALE_TIMEOUT_DAYS=%r", stale_days)

    return overrides


def _positive_int(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return default
    return value


def _positive_float(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return default
    return float(value)


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert merged dict to typed Config dataclass."""
    assignments_data = data.get("assignments") or {}
    assignments = AssignmentsConfig(
        stale_timeout_days=_positive_int(
            assignments_data.get("stale_timeout_days"), DEFAULT_STALE_TIMEOUT_DAYS
        ),
    )

    mutex_data = data.get("mutex") or {}
    defaults = MutexConfig()
    mutex = MutexConfig(
        timeout=_positive_float(mutex_data.get("timeout"), defaults.timeout),
        retry_delay=_positive_float(mutex_data.get("retry_delay"), defaults.retry_delay),
        stale_threshold=_positive_float(
            mutex_data.get("stale_threshold"), defaults.stale_threshold
        ),
    )

    lock_data = data.get("workspace_lock") or {}
    workspace_lock = WorkspaceLockConfig(
        stale_timeout_minutes=_positive_int(
            lock_data.get("stale_timeout_minutes"),
            WorkspaceLockConfig().stale_timeout_minutes,
        ),
    )

    auto_claim_data = data.get("auto_claim") or {}
    auto_claim = AutoClaimConfig(enabled=bool(auto_claim_data.get("enabled", True)))

    log_data = data.get("logging") or {}
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    known_keys = {"assignments", "mutex", "workspace_lock", "auto_claim", "logging"}
    extra = {k: v for k, v in data.items() if k not in known_keys}

    return Config(
        assignments=assignments,
        mutex=mutex,
        workspace_lock=workspace_lock,
        auto_claim=auto_claim,
        logging=logging_config,
        extra=extra,
    )


def load_config(project_root: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config (<project_root>/.planlock/config.yaml)
    3. User config (<configRoot>/config.yaml)

    Args:
        project_root: Repository root for project-level config.
        reload: Force reload even if cached.
    """
    global _cached_config

    if _cached_config is not None and not reload and project_root is None:
        return _cached_config

    layers: list[dict[str, Any]] = []
    for path in get_config_paths(project_root):
        data = load_yaml_file(path)
        if data:
            _log.debug("Loaded config from %s", path)
            layers.append(data)

    env_config = env_overrides()
    if env_config:
        layers.append(env_config)

    config = dict_to_config(merge_configs(*layers))

    # Only the global (no project) config is cached
    if project_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config (tests, or after editing config files)."""
    global _cached_config
    _cached_config = None
