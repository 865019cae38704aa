"""Tests for logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from planlock.config.schema import LoggingConfig
from planlock.logging import TRACE, VERBOSE, get_logger, resolve_level, setup_logging


class TestResolveLevel:
    def test_default_is_warning(self) -> None:
        assert resolve_level(None) == logging.WARNING
        assert resolve_level(LoggingConfig()) == logging.WARNING

    @pytest.mark.parametrize(
        ("verbose", "level"),
        [(0, logging.ERROR), (1, logging.WARNING), (2, logging.INFO), (3, VERBOSE), (4, TRACE), (9, TRACE)],
    )
    def test_verbosity(self, verbose: int, level: int) -> None:
        assert resolve_level(LoggingConfig(verbose=verbose)) == level

    def test_verbose_wins_over_level(self) -> None:
        assert resolve_level(LoggingConfig(level="error", verbose=2)) == logging.INFO

    def test_named_level(self) -> None:
        assert resolve_level(LoggingConfig(level="debug")) == logging.DEBUG
        assert resolve_level(LoggingConfig(level="nonsense")) == logging.WARNING


class TestSetupLogging:
    def test_file_handler(self, tmp_path: Path) -> None:
        log_file = tmp_path / "planlock.log"
        setup_logging(LoggingConfig(file=str(log_file), verbose=2))

        get_logger("store").info("wrote assignments")

        content = log_file.read_text(encoding="utf-8")
        assert "info: wrote assignments" in content

    def test_env_log_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("PLANLOCK_LOG", str(log_file))
        setup_logging(LoggingConfig(level="INFO"))

        get_logger().warning("lock reclaimed")

        assert "warning: lock reclaimed" in log_file.read_text(encoding="utf-8")

    def test_second_call_is_noop(self, tmp_path: Path) -> None:
        setup_logging(LoggingConfig(file=str(tmp_path / "a.log")))
        handlers = list(get_logger().handlers)
        setup_logging(LoggingConfig(file=str(tmp_path / "b.log")))
        assert get_logger().handlers == handlers

    def test_child_logger_names(self) -> None:
        assert get_logger("mutex").name == "planlock.mutex"
        assert get_logger().name == "planlock"
