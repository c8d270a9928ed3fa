"""
Tests for structured logging configuration and JSON formatter.
"""
import json
import logging
from unittest.mock import patch

import pytest

from assessment.core.logging_config import (
    NO_SESSION,
    TEXT_FORMAT,
    JSONFormatter,
    SessionContextFilter,
    get_logger,
    session_id_context,
    setup_logging,
)


def _record(level=logging.INFO, msg="Test message", pathname="test.py", lineno=10):
    return logging.LogRecord(
        name="test_logger",
        level=level,
        pathname=pathname,
        lineno=lineno,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestJSONFormatter:
    """Tests for the JSONFormatter class."""

    def test_basic_log_entry(self):
        """Test that basic log entry produces valid JSON with required fields."""
        log_entry = json.loads(JSONFormatter().format(_record()))

        assert "timestamp" in log_entry
        assert log_entry["level"] == "INFO"
        assert log_entry["logger"] == "test_logger"
        assert log_entry["message"] == "Test message"

    def test_session_id_from_context(self):
        """Test that session_id is included when set in context."""
        token = session_id_context.set("session-123")
        try:
            log_entry = json.loads(JSONFormatter().format(_record()))
            assert log_entry["session_id"] == "session-123"
        finally:
            session_id_context.reset(token)

    def test_no_session_id_when_not_set(self):
        """Test that session_id is omitted when not set."""
        token = session_id_context.set(None)
        try:
            log_entry = json.loads(JSONFormatter().format(_record()))
            assert "session_id" not in log_entry
        finally:
            session_id_context.reset(token)

    def test_turn_fields_from_extra(self):
        """Test that turn fields passed via extra are included."""
        record = _record(msg="Turn 3")
        record.item_id = "item-08"
        record.theta = 1.667
        record.standard_error = 0.82
        record.items_asked = 3
        record.termination_reason = None

        log_entry = json.loads(JSONFormatter().format(record))

        assert log_entry["item_id"] == "item-08"
        assert log_entry["theta"] == pytest.approx(1.667)
        assert log_entry["standard_error"] == pytest.approx(0.82)
        assert log_entry["items_asked"] == 3
        assert log_entry["termination_reason"] is None

    def test_unknown_extra_fields_ignored(self):
        record = _record()
        record.password = "hunter2"
        assert "password" not in json.loads(JSONFormatter().format(record))

    def test_source_location_for_errors(self):
        """Test that source location is included for error-level logs."""
        record = _record(
            level=logging.ERROR, pathname="/srv/assessment/main.py", lineno=42
        )
        log_entry = json.loads(JSONFormatter().format(record))
        assert log_entry["source"] == "/srv/assessment/main.py:42"

    def test_no_source_location_for_info(self):
        record = _record(pathname="/srv/assessment/main.py", lineno=42)
        assert "source" not in json.loads(JSONFormatter().format(record))

    def test_exception_info_included(self):
        """Test that exception info is included when present."""
        try:
            raise ValueError("Test error")
        except ValueError:
            import sys

            record = _record(level=logging.ERROR, msg="An error occurred")
            record.exc_info = sys.exc_info()
            log_entry = json.loads(JSONFormatter().format(record))

        assert "ValueError" in log_entry["exception"]
        assert "Test error" in log_entry["exception"]

    def test_timestamp_is_iso_format(self):
        """Test that timestamp is in ISO format with timezone."""
        log_entry = json.loads(JSONFormatter().format(_record()))

        assert "T" in log_entry["timestamp"]
        assert log_entry["timestamp"].endswith("+00:00")


class TestSessionContextFilter:
    """Tests for stamping records with the bound session."""

    def test_stamps_bound_session(self):
        token = session_id_context.set("session-9")
        try:
            record = _record()
            assert SessionContextFilter().filter(record) is True
            assert record.session_id == "session-9"
        finally:
            session_id_context.reset(token)

    def test_placeholder_outside_session(self):
        record = _record()
        SessionContextFilter().filter(record)
        assert record.session_id == NO_SESSION
        assert "session_id" not in json.loads(JSONFormatter().format(record))

    def test_text_format_includes_session(self):
        record = _record(msg="hello")
        record.session_id = "abc"
        assert "[abc] hello" in logging.Formatter(TEXT_FORMAT).format(record)


class TestSetupLogging:
    """Tests for the setup_logging function."""

    @patch("assessment.core.logging_config.settings")
    def test_production_uses_json_formatter(self, mock_settings):
        """Test that production environment uses JSON formatter."""
        mock_settings.ENV = "production"
        mock_settings.DEBUG = False
        mock_settings.LOG_LEVEL = "INFO"

        with patch("logging.config.dictConfig") as mock_dictconfig:
            setup_logging()

            call_args = mock_dictconfig.call_args[0][0]
            assert call_args["handlers"]["console"]["formatter"] == "json"
            assert call_args["loggers"]["assessment"]["level"] == logging.INFO

    @patch("assessment.core.logging_config.settings")
    def test_development_uses_default_formatter(self, mock_settings):
        """Test that development environment uses human-readable formatter."""
        mock_settings.ENV = "development"
        mock_settings.DEBUG = True
        mock_settings.LOG_LEVEL = "DEBUG"

        with patch("logging.config.dictConfig") as mock_dictconfig:
            setup_logging()

            call_args = mock_dictconfig.call_args[0][0]
            assert call_args["handlers"]["console"]["formatter"] == "default"
            assert call_args["root"]["level"] == logging.DEBUG

    @patch("assessment.core.logging_config.settings")
    def test_unknown_level_falls_back_to_info(self, mock_settings):
        mock_settings.ENV = "development"
        mock_settings.DEBUG = False
        mock_settings.LOG_LEVEL = "chatty"

        with patch("logging.config.dictConfig") as mock_dictconfig:
            setup_logging()

            call_args = mock_dictconfig.call_args[0][0]
            assert call_args["root"]["level"] == logging.INFO


class TestGetLogger:
    """Tests for the get_logger function."""

    def test_get_logger_returns_logger(self):
        logger = get_logger("test_module")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "test_module"

    def test_get_logger_same_instance(self):
        assert get_logger("same_name") is get_logger("same_name")


class TestSessionIdContext:
    """Tests for the session_id context variable."""

    def test_default_is_none(self):
        token = session_id_context.set(None)
        session_id_context.reset(token)

        assert session_id_context.get() is None

    def test_context_isolation(self):
        original = session_id_context.get()

        token = session_id_context.set("temporary-id")
        assert session_id_context.get() == "temporary-id"

        session_id_context.reset(token)
        assert session_id_context.get() == original


class _ContextCapturingHandler(logging.Handler):
    """Records the session ID bound when each record is emitted."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.session_ids = []

    def emit(self, record):
        self.session_ids.append(session_id_context.get())


class TestSessionBinding:
    """The session manager binds the session ID while processing a turn."""

    def test_turn_logs_carry_session_id(self, manager, scope):
        session_id = manager.start_session(scope).session_id

        engine_logger = logging.getLogger("assessment.core.cat.engine")
        handler = _ContextCapturingHandler()
        engine_logger.addHandler(handler)
        previous_level = engine_logger.level
        engine_logger.setLevel(logging.INFO)
        try:
            manager.submit_answer(session_id, "item-04", True)
            manager.abort_session(session_id)
        finally:
            engine_logger.removeHandler(handler)
            engine_logger.setLevel(previous_level)

        assert handler.session_ids
        assert set(handler.session_ids) == {session_id}
        assert session_id_context.get() is None
