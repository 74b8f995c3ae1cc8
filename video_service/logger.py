"""Centralized logging configuration for the application.

Every record carries the id of the request it was emitted under (``-``
outside a request), so service and database logs can be joined with the
access log on ``X-Request-ID``.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from .config import settings

CONSOLE_FORMAT = '%(asctime)s %(levelname)-8s [%(name)s] [%(request_id)s] %(message)s'
CONSOLE_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Set by the request id middleware for the duration of each request
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Stamp the current request id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shippers."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def _build_handler(handler: logging.Handler, as_json: bool) -> logging.Handler:
    handler.addFilter(RequestIdFilter())
    if as_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=CONSOLE_DATEFMT))
    return handler


def setup_logger() -> logging.Logger:
    """Configure the ``video_service`` logger: console always, file when LOG_FILE is set.

    ``LOG_FORMAT=json`` switches both handlers to JSON lines.
    """
    logger = logging.getLogger("video_service")
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

    if logger.handlers:
        return logger

    as_json = settings.LOG_FORMAT == "json"
    logger.addHandler(_build_handler(logging.StreamHandler(sys.stdout), as_json))

    if settings.LOG_FILE:
        try:
            logger.addHandler(_build_handler(logging.FileHandler(settings.LOG_FILE), as_json))
        except OSError as e:
            logger.error(f"Failed to create file handler for {settings.LOG_FILE}: {e}")

    return logger


logger = setup_logger()
