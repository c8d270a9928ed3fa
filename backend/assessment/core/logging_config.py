"""
Centralized logging configuration with session-aware structured logging.

Every record passes through ``SessionContextFilter``, which stamps it with the
session currently being processed. Development output prints that ID inline;
production output is one JSON object per line.
"""
import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from assessment.core.config import settings

# Session being processed by the current thread or task.
# The session manager binds it for the duration of each turn.
session_id_context: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

# Placeholder printed by the text format outside of a session
NO_SESSION = "-"

# Turn fields copied from LogRecord extras into JSON entries
_EXTRA_FIELDS = (
    "item_id",
    "theta",
    "standard_error",
    "items_asked",
    "termination_reason",
    "method",
    "path",
    "status_code",
)

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(session_id)s] %(message)s"


class SessionContextFilter(logging.Filter):
    """Attach ``session_id`` from the context variable to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = session_id_context.get() or NO_SESSION
        return True


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for production logging.

    Entries always carry timestamp, level, logger and message. The session ID
    is included when one is bound, turn fields when passed via ``extra``, and
    the source location for ERROR and above.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        session_id = getattr(record, "session_id", None) or session_id_context.get()
        if session_id and session_id != NO_SESSION:
            log_entry["session_id"] = session_id

        log_entry.update(
            {
                name: getattr(record, name)
                for name in _EXTRA_FIELDS
                if hasattr(record, name)
            }
        )

        if record.levelno >= logging.ERROR:
            log_entry["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def build_logging_config() -> Dict[str, Any]:
    """Return the ``dictConfig`` mapping for the current settings."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    formatter = "json" if settings.ENV == "production" else "default"

    def _logger(level: int) -> Dict[str, Any]:
        return {"level": level, "handlers": ["console"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"session": {"()": SessionContextFilter}},
        "formatters": {
            "default": {"format": TEXT_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
            "json": {"()": JSONFormatter},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": formatter,
                "filters": ["session"],
                "stream": sys.stdout,
            },
        },
        "root": {"level": log_level, "handlers": ["console"]},
        "loggers": {
            "assessment": _logger(log_level),
            "uvicorn.access": _logger(
                logging.WARNING if settings.DEBUG else logging.INFO
            ),
            "sqlalchemy.engine": _logger(logging.WARNING),
        },
    }


def setup_logging() -> None:
    """Configure application-wide logging from settings."""
    logging.config.dictConfig(build_logging_config())


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name (typically __name__)."""
    return logging.getLogger(name)
