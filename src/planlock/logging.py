"""Logging for planlock.

Everything logs under the ``planlock`` logger. Nothing is emitted until
:func:`setup_logging` installs handlers:

- a log file, from ``logging.file`` in config or ``PLANLOCK_LOG``
- otherwise stderr, but only when stderr is a terminal, so that tools
  driving planlock through pipes get clean output

Verbosity runs from 0 (errors) to 4 (trace); ``-vv`` on the command line
maps onto the same scale.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

from rich.logging import RichHandler

if TYPE_CHECKING:
    from planlock.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("planlock")

_initialized = False

_NAMED_LEVELS = {
    name: level
    for level, names in (
        (TRACE, ("TRACE",)),
        (logging.DEBUG, ("DEBUG",)),
        (VERBOSE, ("VERBOSE",)),
        (logging.INFO, ("INFO",)),
        (logging.WARNING, ("WARNING", "WARN")),
        (logging.ERROR, ("ERROR",)),
        (logging.CRITICAL, ("CRITICAL",)),
    )
    for name in names
}

# Index is the verbosity count
_VERBOSITY_LEVELS = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)


class _LowercaseLevelFormatter(logging.Formatter):
    """``12:00:01 warning: message``"""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def resolve_level(config: LoggingConfig | None) -> int:
    """Effective level: ``verbose`` wins over ``level``; default WARNING."""
    if config is None:
        return logging.WARNING
    if config.verbose is not None:
        index = max(0, min(config.verbose, len(_VERBOSITY_LEVELS) - 1))
        return _VERBOSITY_LEVELS[index]
    if config.level:
        return _NAMED_LEVELS.get(config.level.upper(), logging.WARNING)
    return logging.WARNING


def _file_handler(path: str) -> logging.Handler:
    handler = logging.FileHandler(os.path.expanduser(path), mode="a", encoding="utf-8")
    handler.setFormatter(
        _LowercaseLevelFormatter("%(asctime)s %(levelname)s: %(message)s", datefmt="%H:%M:%S")
    )
    return handler


def _terminal_handler() -> logging.Handler:
    return RichHandler(show_path=False, markup=False, rich_tracebacks=False)


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Install handlers on the ``planlock`` logger. Only the first call counts."""
    global _initialized
    if _initialized:
        return
    _initialized = True

    level = resolve_level(config)
    logger.setLevel(level)

    handler: logging.Handler | None = None
    log_path = config.file if config and config.file else os.environ.get("PLANLOCK_LOG")
    if log_path:
        try:
            handler = _file_handler(log_path)
        except OSError as e:
            if sys.stderr.isatty():
                print(f"[planlock] Failed to open log file {log_path}: {e}", file=sys.stderr)
    if handler is None and sys.stderr.isatty():
        handler = _terminal_handler()

    if handler is not None:
        handler.setLevel(level)
        logger.addHandler(handler)


def reset_logging() -> None:
    """Remove installed handlers so setup_logging() can run again."""
    global _initialized
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    _initialized = False


def get_logger(name: str | None = None) -> logging.Logger:
    """The ``planlock`` logger, or a child such as ``planlock.store``."""
    if name:
        return logger.getChild(name)
    return logger
