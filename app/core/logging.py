"""Structured logging configuration.

JSON logs in production (for log aggregation), a plain human-readable format
everywhere else. Domain-analysis context such as the domain name, token id
and request id is carried through ``extra`` and emitted as top-level fields.
"""
import logging
import json
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import traceback


# Fields lifted from ``extra`` into the JSON payload
CONTEXT_FIELDS = (
    "request_id", "method", "path", "status_code", "duration_ms", "client",
    "domain", "token_id", "data_source", "operation", "error", "error_type",
)


class JSONFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        for attr in CONTEXT_FIELDS:
            if hasattr(record, attr):
                log_obj[attr] = getattr(record, attr)

        return json.dumps(log_obj, default=str)


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that merges persistent context into every record.

    Example:
        >>> logger = ContextLogger(base_logger, {"domain": "crypto.eth"})
        >>> logger.info("Scoring token activities")
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(level: str = "INFO", json_format: bool = True) -> logging.Logger:
    """Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use the JSON formatter (True for production)

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    return root_logger


def get_logger(name: str, context: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """Get a logger, wrapped in a ContextLogger when context is given.

    Example:
        >>> logger = get_logger(__name__, {"domain": "crypto.eth"})
        >>> logger.info("Analysis started")
    """
    logger = logging.getLogger(name)

    if context:
        return ContextLogger(logger, context)

    return logger


class LogTimer:
    """Context manager for timing an operation and logging its duration.

    Example:
        >>> with LogTimer(logger, "doma_query:name"):
        ...     data = await client.fetch_name("crypto.eth")
        # Logs: "doma_query:name completed in 125.0ms"
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is None:
            return False
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        extra = {"operation": self.operation, "duration_ms": round(self.duration_ms, 2)}

        if exc_type:
            # Expected HTTP errors (404, 400) are not failures of the operation itself;
            # errors without a numeric status count as server errors
            status_code = getattr(exc_val, "status_code", None)
            if not isinstance(status_code, int):
                status_code = 500
            level = logging.WARNING if status_code < 500 else logging.ERROR
            self.logger.log(
                level,
                f"{self.operation} failed after {self.duration_ms:.1f}ms",
                extra=extra,
                exc_info=level == logging.ERROR
            )
        else:
            self.logger.info(
                f"{self.operation} completed in {self.duration_ms:.1f}ms",
                extra=extra
            )
        return False
