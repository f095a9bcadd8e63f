"""Tests for the pluggable logger and console handler setup.

Covers:
- DefaultLogger satisfies LoggerProtocol and forwards to the memguard logger
- Debug records are dropped unless debug logging is enabled
- Non-string values are rendered with repr()
- configure_logging() splits stdout/stderr and is idempotent
- Without prior configuration DefaultLogger writes to stdout/stderr itself
"""

import logging

import pytest

from memguard.core.log import LOGGER_NAME, DefaultLogger, LoggerProtocol, configure_logging


@pytest.fixture(autouse=True)
def memguard_logger():
    """Start every test with an unconfigured ``memguard`` logger."""
    logger = logging.getLogger(LOGGER_NAME)
    handlers = list(logger.handlers)
    level = logger.level
    logger.handlers = []
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)


class TestDefaultLogger:
    """DefaultLogger forwarding rules."""

    def test_satisfies_protocol(self):
        assert isinstance(DefaultLogger(), LoggerProtocol)

    def test_error_forwarded(self, caplog):
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
        DefaultLogger().log("error", "server", "down")
        assert ("memguard", logging.ERROR, "server down") in caplog.record_tuples

    def test_debug_dropped_by_default(self, caplog):
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
        DefaultLogger().log("debug", "cache.get() try 1 times")
        assert caplog.records == []

    def test_debug_emitted_when_enabled(self, caplog):
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
        DefaultLogger(debug_logging=True).log("debug", "cache.get() return:", None)
        assert caplog.record_tuples == [("memguard", logging.DEBUG, "cache.get() return: None")]

    def test_values_rendered_with_repr(self, caplog):
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
        DefaultLogger().log("info", "keys:", ["a", "b"], b"raw")
        assert caplog.records[0].getMessage() == "keys: ['a', 'b'] b'raw'"

    def test_unknown_level_logged_as_info(self, caplog):
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
        DefaultLogger().log("notice", "hello")
        assert caplog.records[0].levelno == logging.INFO

    def test_warn_alias(self, caplog):
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
        DefaultLogger().log("warn", "slow")
        assert caplog.records[0].levelno == logging.WARNING


class TestConfigureLogging:
    """Console handler installation."""

    def test_splits_stdout_and_stderr(self, memguard_logger, capsys):
        configure_logging(debug_logging=True, fmt="%(levelname)s %(message)s")
        memguard_logger.propagate = False
        try:
            memguard_logger.info("routine")
            memguard_logger.error("broken")
        finally:
            memguard_logger.propagate = True

        captured = capsys.readouterr()
        assert "INFO routine" in captured.out
        assert "broken" not in captured.out
        assert "ERROR broken" in captured.err
        assert "routine" not in captured.err

    def test_idempotent(self, memguard_logger):
        configure_logging()
        configure_logging()
        marked = [h for h in memguard_logger.handlers if getattr(h, "_memguard_console", False)]
        assert len(marked) == 2

    def test_level_follows_debug_flag(self, memguard_logger):
        assert configure_logging(debug_logging=True).level == logging.DEBUG
        assert configure_logging(debug_logging=False).level == logging.INFO


class TestDefaultConsole:
    """DefaultLogger output without any logging setup by the application."""

    def test_writes_to_standard_streams(self, capfd):
        log = DefaultLogger(debug_logging=True)
        log.log("debug", "cache.set() try 1 times", "k")
        log.log("info", "routine")
        log.log("error", "server down")

        out, err = capfd.readouterr()
        assert "cache.set() try 1 times k" in out
        assert "routine" in out
        assert "server down" in err
        assert "server down" not in out

    def test_debug_hidden_without_flag(self, capfd):
        log = DefaultLogger()
        log.log("debug", "cache.get() try 1 times")
        log.log("info", "routine")

        out, _ = capfd.readouterr()
        assert "routine" in out
        assert "try 1 times" not in out

    def test_existing_configuration_kept(self, memguard_logger):
        handler = logging.NullHandler()
        memguard_logger.addHandler(handler)
        DefaultLogger(debug_logging=True)
        assert memguard_logger.handlers == [handler]

    def test_debug_flag_lowers_console_level(self, memguard_logger):
        configure_logging(debug_logging=False)
        DefaultLogger(debug_logging=True)
        assert memguard_logger.level == logging.DEBUG
