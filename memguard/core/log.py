"""Pluggable leveled logger used by the facade and the failure observer.

The facade only depends on ``LoggerProtocol`` — any object with a
``log(level, *values)`` method satisfies it.  ``DefaultLogger`` forwards to
the stdlib ``memguard`` logger, so the internal module loggers
(``memguard.pool``, ``memguard.resilience.retry``, ...) and the facade's
operator log end up in the same handlers.

``configure_logging()`` installs console handlers: records below WARNING
go to stdout, WARNING and above go to stderr.  A ``DefaultLogger`` installs
them itself when the application has not configured the ``memguard``
logger, so info, warn and error lines always reach the standard streams
and ``debug_logging`` alone turns on debug output.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Protocol, runtime_checkable

LOGGER_NAME = "memguard"

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@runtime_checkable
class LoggerProtocol(Protocol):
    """Capability consumed by ``CacheFacade`` and ``FailureObserver``."""

    def log(self, level: str, *values: Any) -> None: ...


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return repr(value)


class DefaultLogger:
    """``LoggerProtocol`` implementation backed by stdlib ``logging``.

    Args:
        debug_logging: Emit ``debug`` records.  When false they are dropped
                       before reaching the stdlib logger.
        name:          Stdlib logger name (default ``memguard``).

    When that logger has no handlers yet, the stdout/stderr console
    handlers are installed with its level following *debug_logging*.
    """

    def __init__(self, debug_logging: bool = False, name: str = LOGGER_NAME) -> None:
        self.debug_logging = debug_logging
        self._logger = logging.getLogger(name)
        if not self._logger.handlers:
            configure_logging(debug_logging, name=name)
        elif debug_logging and _has_console(self._logger):
            self._logger.setLevel(logging.DEBUG)

    def log(self, level: str, *values: Any) -> None:
        if level == "debug" and not self.debug_logging:
            return
        # Unknown levels are logged like info
        levelno = _LEVELS.get(level, logging.INFO)
        self._logger.log(levelno, " ".join(_render(v) for v in values))


# ── Console handlers ────────────────────────────────────────────────────


class _BelowLevelFilter(logging.Filter):
    """Pass only records strictly below *level*."""

    def __init__(self, level: int) -> None:
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def _has_console(logger: logging.Logger) -> bool:
    return any(getattr(h, "_memguard_console", False) for h in logger.handlers)


def configure_logging(
    debug_logging: bool = False,
    fmt: str = "%(asctime)s %(levelname)s %(name)s: %(message)s",
    name: str = LOGGER_NAME,
) -> logging.Logger:
    """Attach stdout/stderr handlers to the ``memguard`` logger.

    Safe to call repeatedly; handlers installed by a previous call are
    replaced rather than duplicated.
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        if getattr(handler, "_memguard_console", False):
            logger.removeHandler(handler)

    formatter = logging.Formatter(fmt)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.addFilter(_BelowLevelFilter(logging.WARNING))
    stdout_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(formatter)

    for handler in (stdout_handler, stderr_handler):
        handler._memguard_console = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    logger.setLevel(logging.DEBUG if debug_logging else logging.INFO)
    return logger
