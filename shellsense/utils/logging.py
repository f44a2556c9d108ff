"""
Structured Logging for ShellSense

Provides JSON-formatted logging for hosts that ship logs to an aggregator,
and a plain text mode for local development.

Features:
- JSON-formatted logs with consistent schema
- Terminal session and pipeline run context injection
- Performance timing for model calls
- Development-friendly plain text mode
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

from shellsense.utils.errors import ConfigurationError

PACKAGE_LOGGER = "shellsense"

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# Context variables for tracking session/run context
_session_id: ContextVar[Optional[str]] = ContextVar('session_id', default=None)
_pipeline_run_id: ContextVar[Optional[str]] = ContextVar('pipeline_run_id', default=None)


def _context_ids() -> Dict[str, str]:
    ids = {"session_id": _session_id.get(), "pipeline_run_id": _pipeline_run_id.get()}
    return {key: value for key, value in ids.items() if value}


def record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields passed through `extra=`, i.e. everything LogRecord does not define itself."""
    return {
        key: value for key, value in record.__dict__.items()
        if key not in StructuredLogFormatter.RESERVED_ATTRS and not key.startswith("_")
    }


class StructuredLogFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with consistent schema:
    {
        "timestamp": "2026-01-05T10:30:45.123Z",
        "level": "INFO",
        "logger": "shellsense.pipeline.orchestrator",
        "message": "pipeline.run.completed",
        "session_id": "abc-123",
        "pipeline_run_id": "7f3e...",
        "extra": {...}
    }
    """

    RESERVED_ATTRS = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
        'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
        'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
        'exc_text', 'stack_info', 'taskName'
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_data: Dict[str, Any] = {
            "timestamp": self.format_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log_data.update(_context_ids())
        extra_fields = {key: self.serialize_value(value) for key, value in record_extras(record).items()}
        if extra_fields:
            log_data["extra"] = extra_fields
        log_data["location"] = f"{record.pathname}:{record.lineno}"

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stacktrace": self.formatException(record.exc_info)
            }

        return json.dumps(log_data, default=str)

    @staticmethod
    def format_timestamp(created: float) -> str:
        """Format timestamp as ISO 8601 with milliseconds"""
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'

    @classmethod
    def serialize_value(cls, value: Any) -> Any:
        """Reduce a value to something json.dumps accepts."""
        if isinstance(value, Enum):
            return value.value
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, dict):
            return {str(k): cls.serialize_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [cls.serialize_value(v) for v in value]
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)


class DevelopmentFormatter(logging.Formatter):
    """
    Human-friendly formatter for development.

    Example output:
    2026-01-05 10:30:45.123 | INFO     | shellsense.llm.transport:42 | llm.complete.success [tokens=120]
    """

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human reading"""
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            '%Y-%m-%d %H:%M:%S.%f'
        )[:-3]

        level = record.levelname.ljust(8)
        if self.use_colors:
            level = f"{self.COLORS.get(record.levelno, '')}{level}{self.RESET}"

        location = f"{record.name}:{record.lineno}"

        context_parts = [f"{key}={value[:8]}" for key, value in _context_ids().items()]
        context_parts.extend(f"{key}={value}" for key, value in record_extras(record).items())

        context = f" [{', '.join(context_parts)}]" if context_parts else ""
        log_line = f"{timestamp} | {level} | {location} | {record.getMessage()}{context}"

        if record.exc_info:
            log_line += "\n" + self.formatException(record.exc_info)

        return log_line


class PerformanceLogger:
    """
    Performance measurement logger with structured output.

    Usage:
        with PerformanceLogger("llm.openai.complete", {"model": "gpt-4o"}):
            response = await client.post(...)
    """

    def __init__(self, operation: str, context: Optional[Dict[str, Any]] = None,
                 slow_threshold_ms: float = 10000.0):
        self.operation = operation
        self.context = context or {}
        self.slow_threshold_ms = slow_threshold_ms
        self.start_time = 0.0
        self.duration_ms = 0.0
        self.logger = logging.getLogger(f"{PACKAGE_LOGGER}.performance.{operation}")

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.monotonic() - self.start_time) * 1000

        log_extra = {
            "operation": self.operation,
            "duration_ms": round(self.duration_ms, 2),
            **self.context
        }

        if exc_type:
            log_extra["error"] = str(exc_val)
            self.logger.debug(
                f"{self.operation} ended with {exc_type.__name__} after {self.duration_ms:.2f}ms",
                extra=log_extra
            )
        elif self.duration_ms > self.slow_threshold_ms:
            self.logger.warning(
                f"{self.operation} took {self.duration_ms:.2f}ms",
                extra=log_extra
            )
        else:
            self.logger.debug(
                f"{self.operation} completed in {self.duration_ms:.2f}ms",
                extra=log_extra
            )


def setup_structured_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """
    Install ShellSense handlers on the package logger.

    The host application's root logger is left alone; records from
    shellsense.* go to stderr in the chosen format and, when log_file is
    set, to that file as JSON lines. Calling again replaces the handlers
    installed by the previous call.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive)
        format_type: "json" or "dev"
        log_file: Optional path for a JSON log file

    Raises:
        ConfigurationError: Unknown level or format type
    """
    level_name = level.upper()
    if level_name not in _LEVELS:
        raise ConfigurationError(f"Unknown log level: {level}", config_key="logging.level")
    if format_type not in ("json", "dev"):
        raise ConfigurationError(f"Unknown log format: {format_type}", config_key="logging.format_type")

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level_name)
    for handler in [h for h in package_logger.handlers if getattr(h, "_shellsense", False)]:
        package_logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(
        StructuredLogFormatter() if format_type == "json" else DevelopmentFormatter()
    )
    handlers = [stream_handler]

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(StructuredLogFormatter())
        handlers.append(file_handler)

    for handler in handlers:
        handler._shellsense = True
        package_logger.addHandler(handler)

    package_logger.debug("logging.configured", extra={"level": level_name, "format_type": format_type})
    return package_logger


def set_session_id(session_id: Optional[str]) -> None:
    """Set terminal session ID for current context"""
    _session_id.set(session_id)


def set_pipeline_run_id(run_id: Optional[str]) -> None:
    """Set pipeline run ID for current context"""
    _pipeline_run_id.set(run_id)


def get_session_id() -> Optional[str]:
    """Get current terminal session ID"""
    return _session_id.get()


def get_pipeline_run_id() -> Optional[str]:
    """Get current pipeline run ID"""
    return _pipeline_run_id.get()


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("pipeline.phase.changed", extra={"phase": "planning"})
    """
    return logging.getLogger(name)
