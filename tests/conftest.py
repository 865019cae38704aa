"""Root pytest configuration for all tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from planlock.config import reset_config
from planlock.logging import reset_logging

REPOSITORY_ID = "github.com__example__widgets"


@pytest.fixture(autouse=True)
def isolated_config_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the config root at a per-test directory."""
    root = tmp_path / "config-home"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(root))
    monkeypatch.delenv("APPDATA", raising=False)
    for name in (
        "PLANLOCK_LOG",
        "PLANLOCK_DISABLE_AUTO_CLAIM",
        "PLANLOCK_STALE_TIMEOUT_DAYS",
        "PLANLOCK_USER",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield root / "planlock"
    reset_config()
    reset_logging()


@pytest.fixture
def repository_id() -> str:
    return REPOSITORY_ID
