# btu_api/logging_config.py
"""
Structured JSON logging.

Provides a single-line JSON formatter with request correlation, plus a context
manager that times storage backend operations.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime

# Context variable for request correlation
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


# -----------------------------------------------------------------------------
# JSON Formatter
# -----------------------------------------------------------------------------


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON.

    Output format:
    {"timestamp": "...", "level": "INFO", "message": "...", "request_id": "...", ...}
    """

    EXTRA_FIELDS = (
        "event",
        "duration_ms",
        "operation",
        "backend",
        "key",
        "size_bytes",
        "news_id",
        "method",
        "path",
        "status_code",
    )

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """
    Configure logging for production or local development.

    Args:
        json_format: If True, use JSON format. If False, use human-readable format.
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("google.auth").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


# -----------------------------------------------------------------------------
# Context Managers
# -----------------------------------------------------------------------------


@contextmanager
def log_storage_operation(operation: str, backend: str, key: str):
    """
    Context manager for storage operation instrumentation.

    Logs operation end with timing and size.

    Usage:
        with log_storage_operation("put", "drive", filename) as metrics:
            ref = await provider.put(content, filename)
            metrics["size_bytes"] = len(content)
    """
    start_time = time.time()
    logger = logging.getLogger("btu_api.storage.ops")
    metrics: dict = {"size_bytes": 0}

    try:
        yield metrics

        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            f"Storage {operation} completed: {backend}/{key} ({metrics['size_bytes']} bytes, {duration_ms}ms)",
            extra={
                "event": f"storage_{operation}_complete",
                "operation": operation,
                "backend": backend,
                "key": key,
                "duration_ms": duration_ms,
                "size_bytes": metrics["size_bytes"],
            },
        )
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.warning(
            f"Storage {operation} failed: {backend}/{key} - {type(e).__name__}",
            extra={
                "event": f"storage_{operation}_failed",
                "operation": operation,
                "backend": backend,
                "key": key,
                "duration_ms": duration_ms,
            },
        )
        raise
