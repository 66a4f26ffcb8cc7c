"""Logging utilities for seqchat."""

import io
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

# Set to any non-empty value to skip the in-memory log capture buffer
DISABLE_CAPTURE_ENV_VAR = "SEQCHAT_DISABLE_LOG_CAPTURE"


class JsonLogFormatter(logging.Formatter):
    """JSON formatter for log records to align with structlog JSON output."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


# Buffer holding captured log lines, e.g. for attaching to a run transcript
_log_buffer: Optional[io.StringIO] = None
_buffer_handler: Optional[logging.StreamHandler] = None


def setup_logging(level: str = "INFO", json_logs: bool = False):
    """Setup structured logging with optional in-memory capture."""
    global _log_buffer, _buffer_handler

    capture = not os.getenv(DISABLE_CAPTURE_ENV_VAR)
    _log_buffer = io.StringIO() if capture else None

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    numeric_level = getattr(logging, level.upper())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers to avoid duplicates on re-setup
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.setLevel(numeric_level)
    root_logger.addHandler(console_handler)

    if _log_buffer is not None:
        _buffer_handler = logging.StreamHandler(_log_buffer)
        if json_logs:
            _buffer_handler.setFormatter(JsonLogFormatter())
        else:
            _buffer_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
                )
            )
        _buffer_handler.setLevel(numeric_level)
        root_logger.addHandler(_buffer_handler)
    else:
        _buffer_handler = None


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def bind_log_context(**values: Any) -> None:
    """Bind key/values (e.g. run_id) to every log line in the current context."""
    structlog.contextvars.bind_contextvars(**values)


def unbind_log_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def get_captured_logs() -> Optional[str]:
    """
    Get all captured log content.

    Returns:
        The captured log content as a string, or None if capture is disabled.
    """
    if _log_buffer is not None:
        return _log_buffer.getvalue()
    return None


def clear_log_buffer():
    """Clear the log buffer (useful for tests)."""
    if _log_buffer is not None:
        _log_buffer.truncate(0)
        _log_buffer.seek(0)
