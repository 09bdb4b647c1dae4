"""Tests for peerassist.logging_config module."""

import logging

import pytest

from peerassist.logging_config import (
    LOG_FORMAT,
    get_logger,
    log_auth_event,
    log_task_event,
    setup_logging,
)


@pytest.fixture(autouse=True)
def clean_peerassist_logger():
    """Remove all handlers from the peerassist logger before/after each test."""
    logger = logging.getLogger("peerassist")
    saved_handlers = list(logger.handlers)
    saved_level = logger.level
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    yield
    logger.handlers[:] = saved_handlers
    logger.setLevel(saved_level)


def _console_handlers(logger):
    return [h for h in logger.handlers if getattr(h, "_peerassist_console", False)]


class TestGetLogger:
    """Tests for get_logger."""

    def test_namespaced_under_peerassist(self):
        assert get_logger("routes.tasks").name == "peerassist.routes.tasks"

    def test_already_namespaced_name_kept(self):
        assert get_logger("peerassist.background").name == "peerassist.background"

    def test_root_name(self):
        assert get_logger("peerassist").name == "peerassist"


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_returns_root_logger(self):
        """Should return the peerassist logger."""
        logger = setup_logging()
        assert isinstance(logger, logging.Logger)
        assert logger.name == "peerassist"

    def test_default_level_info(self):
        """Default level should be INFO."""
        assert setup_logging().level == logging.INFO

    def test_custom_level_case_insensitive(self):
        """Level string should be case-insensitive."""
        assert setup_logging(level="warning").level == logging.WARNING

    def test_invalid_level_falls_back_to_info(self):
        """Invalid level string should fall back to INFO."""
        assert setup_logging(level="INVALID").level == logging.INFO

    def test_debug_flag_wins(self):
        """debug=True forces DEBUG regardless of level."""
        assert setup_logging(level="ERROR", debug=True).level == logging.DEBUG

    def test_no_duplicate_handlers(self):
        """Calling setup twice should not add duplicate handlers."""
        logger1 = setup_logging()
        logger2 = setup_logging()
        assert logger1 is logger2
        assert len(_console_handlers(logger1)) == 1

    def test_log_format(self):
        """Console handler uses the pipe-separated format."""
        logger = setup_logging()
        handler = _console_handlers(logger)[0]
        assert handler.formatter._fmt == LOG_FORMAT


class TestEventHelpers:
    """Tests for log_auth_event and log_task_event."""

    def test_auth_success_is_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="peerassist"):
            log_auth_event("login", "a@x.com", success=True)

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.name == "peerassist.auth.events"
        assert record.getMessage() == "login | email=a@x.com | success=True"

    def test_auth_failure_is_warning_with_reason(self, caplog):
        with caplog.at_level(logging.INFO, logger="peerassist"):
            log_auth_event("login", "a@x.com", success=False, reason="bad_password")

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.getMessage().endswith("| reason=bad_password")

    def test_task_event_format(self, caplog):
        with caplog.at_level(logging.INFO, logger="peerassist"):
            log_task_event("apply", "task-1", "b@x.com", detail="status=Open")

        assert caplog.records[-1].getMessage() == (
            "apply | task=task-1 | actor=b@x.com | success=True | status=Open"
        )

    def test_task_event_failure_is_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="peerassist"):
            log_task_event("apply", "task-1", "a@x.com", success=False, detail="self-apply")

        assert caplog.records[-1].levelno == logging.WARNING
