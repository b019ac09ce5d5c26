"""
Logging Configuration
=====================

influxwire only ever creates module loggers (``logging.getLogger(__name__)``).
Applications opt into output with ``setup_logging()``:

- ``ENVIRONMENT=production`` writes one JSON object per record, with any
  structured payload attached by the helpers below merged in
- any other environment writes colored, column-aligned console lines

Helpers:
- ``PerformanceLogger``: times a block (writes, queries)
- ``log_http_call``: one record per HTTP exchange with the server
- ``log_wire_summary``: one record per encoded or decoded payload
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from influxwire.core.config import get_settings


# Attribute carrying structured data on a LogRecord
EXTRA_KEY = "extra_data"


# =================================================================
# LOG FORMATTERS
# =================================================================

class StructuredFormatter(logging.Formatter):
    """
    One JSON document per record.

    Keys: timestamp (UTC, ISO 8601), level, logger, message, module,
    function, line, exception (when present), plus the record's
    ``extra_data`` mapping.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        payload.update(getattr(record, EXTRA_KEY, None) or {})
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Console formatter painting the level name with ANSI colors."""

    COLORS = {
        "DEBUG": "\033[37m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        color = self.COLORS.get(original)
        if color:
            record.levelname = f"{color}{original:8}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # Other handlers must see the plain level name
            record.levelname = original


# =================================================================
# LOGGER SETUP
# =================================================================

def get_console_handler(
    environment: Optional[str] = None,
    stream: Optional[TextIO] = None
) -> logging.StreamHandler:
    """
    Build the console handler for an environment.

    Args:
        environment: Defaults to settings.ENVIRONMENT
        stream: Defaults to stdout
    """
    handler = logging.StreamHandler(stream or sys.stdout)

    if (environment or get_settings().ENVIRONMENT) == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(ColoredFormatter(
            fmt="%(asctime)s - %(name)-45s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    environment: Optional[str] = None,
    stream: Optional[TextIO] = None
) -> None:
    """
    Route all logging to a single console handler.

    Args:
        log_level: Level name, case-insensitive. Defaults to settings.LOG_LEVEL
        environment: "production" selects JSON output. Defaults to
            settings.ENVIRONMENT
        stream: Output stream. Defaults to stdout

    Example:
        >>> setup_logging(log_level="DEBUG")
        >>> logging.getLogger("influxwire").debug("📝 wire tracing on")
    """
    level = (log_level or get_settings().LOG_LEVEL).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(get_console_handler(environment, stream))

    # Per-request transport chatter
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"🔧 Logging configured: level={level}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# =================================================================
# PERFORMANCE LOGGING
# =================================================================

class PerformanceLogger:
    """
    Time a block and log its outcome.

    The elapsed time in seconds is kept in ``elapsed`` and attached to the
    record as structured data.

    Example:
        >>> with PerformanceLogger("write 500 lines to telegraf") as perf:
        ...     client.write(lines)
        >>> perf.elapsed
        0.042
    """

    def __init__(self, operation_name: str, logger_name: Optional[str] = None):
        self.operation_name = operation_name
        self.logger = get_logger(logger_name or __name__)
        self.start_time: Optional[datetime] = None
        self.elapsed: Optional[float] = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.debug(f"⏱️  Started: {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = (datetime.now() - self.start_time).total_seconds()
        extra = {EXTRA_KEY: {"operation": self.operation_name, "elapsed_s": self.elapsed}}

        if exc_type:
            self.logger.error(
                f"❌ Failed: {self.operation_name} ({self.elapsed:.2f}s)",
                exc_info=(exc_type, exc_val, exc_tb),
                extra=extra
            )
        else:
            self.logger.info(f"✅ Completed: {self.operation_name} ({self.elapsed:.2f}s)", extra=extra)


# =================================================================
# STRUCTURED HELPERS
# =================================================================

def log_http_call(
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    elapsed_ms: float,
    **extra_data
) -> None:
    """
    Log one HTTP exchange with the server.

    Error statuses are logged at WARNING; the caller decides whether they
    become exceptions.

    Example:
        >>> log_http_call(logger, "POST", "/write", 204, 12.5, lines=500)
    """
    level = logging.DEBUG if status_code < 400 else logging.WARNING
    logger.log(
        level,
        f"🌐 {method} {path} [{status_code}] ({elapsed_ms:.1f}ms)",
        extra={EXTRA_KEY: {
            "http": {
                "method": method,
                "path": path,
                "status_code": status_code,
                "elapsed_ms": elapsed_ms,
                **extra_data
            }
        }}
    )


def log_wire_summary(logger: logging.Logger, operation: str, **counts: int) -> None:
    """
    Log the outcome of encoding or decoding one payload.

    Logged at DEBUG, or WARNING when ``errors`` is non-zero.

    Example:
        >>> log_wire_summary(logger, "decode_csv", tables=3, errors=0)
    """
    summary = ", ".join(f"{count} {name}" for name, count in counts.items())
    failed = counts.get("errors", 0) > 0
    logger.log(
        logging.WARNING if failed else logging.DEBUG,
        f"{'⚠️ ' if failed else '📊'} {operation}: {summary}",
        extra={EXTRA_KEY: {"wire": {"operation": operation, **counts}}}
    )
