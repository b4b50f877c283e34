"""Logging configuration for the Upload Center engine.

Every log line written while the driver works on a queue item carries that
item's id (``job_id``) and the storage account it started on. The JSON
formatter reads both straight from context variables; the local text
format gets them through ``QueueContextFilter``.
"""

import contextvars
import json
import logging
import sys
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

job_id_context: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("job_id", default=None)
account_id_context: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "account_id", default=None
)

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(job_id)s@%(account_id)s] %(message)s"

# Loggers that report every HTTP round trip at INFO
NOISY_LOGGERS = ("httpx", "httpcore")

_RECORD_ATTRIBUTES = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


@contextmanager
def job_context(job_id: str, account_id: Optional[str] = None) -> Iterator[None]:
    """Tag log records emitted inside the block with a queue item and account."""
    job_token = job_id_context.set(job_id)
    account_token = account_id_context.set(account_id)
    try:
        yield
    finally:
        account_id_context.reset(account_token)
        job_id_context.reset(job_token)


class QueueContextFilter(logging.Filter):
    """Fill ``job_id``/``account_id`` on records for the text format.

    Values passed explicitly through ``extra=`` are left alone.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "job_id"):
            record.job_id = job_id_context.get() or "-"
        if not hasattr(record, "account_id"):
            record.account_id = account_id_context.get() or "-"
        return True


class JsonLogFormatter(logging.Formatter):
    """Single-line JSON formatter for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
        }

        job_id = job_id_context.get()
        if job_id:
            log_entry["job_id"] = job_id
        account_id = account_id_context.get()
        if account_id:
            log_entry["account_id"] = account_id

        # extra= fields win over context values
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES and value is not None:
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = "".join(traceback.format_exception(*record.exc_info))
            log_entry["exception_type"] = record.exc_info[0].__name__ if record.exc_info[0] else "Unknown"
            log_entry["exception_message"] = str(record.exc_info[1]) if record.exc_info[1] else ""

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging() -> None:
    """Configure logging for the application.

    Local development gets the text format at DEBUG level; every other
    environment gets JSON lines at ``settings.LOG_LEVEL``.
    """
    from uploadcenter.core.config import settings

    handler = logging.StreamHandler(sys.stdout)
    if settings.ENV == "local":
        log_level = logging.DEBUG
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
        handler.addFilter(QueueContextFilter())
    else:
        log_level = _resolve_level(settings.LOG_LEVEL)
        handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.setLevel(log_level)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.addHandler(handler)
        uvicorn_logger.propagate = False
