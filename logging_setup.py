"""
Shared logging infrastructure for the trip voice relay.

Used by both the relay server and the Python voice client so that every log
line is a single JSON object that can be correlated per connection.

Features:
- JSON-formatted structured logs
- Configurable log levels
- Session ID correlation (one session per client WebSocket)
- Component tagging
- PII-aware logging helpers (trip records carry driver names)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Severity(str, Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Component(str, Enum):
    """System components for log tagging."""
    RELAY_SERVER = "relay_server"
    CONNECTION = "connection"
    UPSTREAM = "upstream"
    TRIP_STORE = "trip_store"
    REGISTRY = "registry"
    VOICE_CLIENT = "voice_client"
    PLAYBACK = "playback"


# LogRecord attributes that are not user-supplied extra fields
_RESERVED_ATTRS = frozenset([
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "component", "session_id", "message",
])


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each record becomes one line with:
    - ISO8601 timestamp
    - severity
    - component
    - session_id (if present)
    - message plus any extra fields
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", record.name),
            "message": record.getMessage(),
        }

        if hasattr(record, "session_id"):
            log_data["session_id"] = record.session_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger:
    """
    Wrapper around Python's logging with keyword fields.

    Usage:
        logger = StructuredLogger(Component.CONNECTION, session_id="3f2a...")
        logger.info("Client connected", remote="127.0.0.1")
        logger.error("Upstream failed", error="details")
        logger.info_pii("Trip saved", autista="Ivan")
    """

    def __init__(
        self,
        component: str | Component,
        session_id: Optional[str] = None,
        logger_name: Optional[str] = None
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.session_id = session_id
        self.logger = logging.getLogger(logger_name or self.component)

    def _log(
        self,
        level: int,
        message: str,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", None)
        stacklevel = kwargs.pop("stacklevel", 1)

        extra = {
            "component": self.component,
            **kwargs
        }

        if self.session_id:
            extra["session_id"] = self.session_id

        if pii:
            # Kept in its own field so it can be filtered before shipping logs
            extra["pii"] = pii

        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=stacklevel,
            extra=extra
        )

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log an error message with the active exception attached."""
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)

    def debug_pii(self, message: str, **pii_fields):
        """Log debug with PII fields explicitly marked."""
        self._log(logging.DEBUG, message, pii=pii_fields)

    def info_pii(self, message: str, **pii_fields):
        """
        Log info with PII fields explicitly marked.

        Example:
            logger.info_pii("Trip saved", autista="Genti", cliente="Argos")
        """
        self._log(logging.INFO, message, pii=pii_fields)

    def with_session(self, session_id: str) -> "StructuredLogger":
        """Create a new logger instance bound to a session ID."""
        return StructuredLogger(
            self.component,
            session_id=session_id,
            logger_name=self.logger.name
        )


def setup_logging(
    level: Optional[str] = None,
    use_json: Optional[bool] = None,
    include_timestamp: bool = True
) -> None:
    """
    Configure the root logger for the application.

    Args:
        level: Log level name; falls back to LOG_LEVEL, then INFO
        use_json: JSON (True) or plain text (False); falls back to LOG_JSON, then True
        include_timestamp: Include timestamps in plain-text logs

    Call once at process startup.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if use_json is None:
        use_json = os.getenv("LOG_JSON", "1").lower() not in ("0", "false", "no")

    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)

    if use_json:
        formatter = JSONFormatter()
    else:
        format_str = "%(levelname)s - %(name)s - %(message)s"
        if include_timestamp:
            format_str = "%(asctime)s - " + format_str
        formatter = logging.Formatter(format_str)

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)


def get_logger(
    component: str | Component,
    session_id: Optional[str] = None
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Example:
        logger = get_logger(Component.RELAY_SERVER)
        logger.info("Server started", port=3000)
    """
    return StructuredLogger(component, session_id=session_id)
