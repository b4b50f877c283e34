"""Tests for logging configuration."""

import json
import logging
import sys

from uploadcenter.core.config import settings
from uploadcenter.core.logging import (
    JsonLogFormatter,
    QueueContextFilter,
    TEXT_FORMAT,
    job_context,
    job_id_context,
    setup_logging,
)


def make_record(msg="Upload succeeded", **extra):
    record = logging.LogRecord(
        name="uploadcenter.queue.engine",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extras_and_queue_context():
    with job_context("item-42", "ik-1"):
        line = JsonLogFormatter().format(make_record(url="https://cdn/x.png", final_size=10))

    entry = json.loads(line)
    assert entry["severity"] == "INFO"
    assert entry["message"] == "Upload succeeded"
    assert entry["job_id"] == "item-42"
    assert entry["account_id"] == "ik-1"
    assert entry["url"] == "https://cdn/x.png"
    assert entry["final_size"] == 10


def test_explicit_account_overrides_context():
    """Test that an account passed via extra= wins (e.g. after a failover switch)."""
    with job_context("item-42", "ik-1"):
        entry = json.loads(JsonLogFormatter().format(make_record(account_id="ik-2", error=None)))

    assert entry["account_id"] == "ik-2"
    assert "error" not in entry


def test_job_context_is_reset():
    with job_context("item-1"):
        assert job_id_context.get() == "item-1"
    assert job_id_context.get() is None

    entry = json.loads(JsonLogFormatter().format(make_record()))
    assert "job_id" not in entry
    assert "account_id" not in entry


def test_json_formatter_exception():
    try:
        raise ValueError("bad bytes")
    except ValueError:
        record = make_record("Compression failed")
        record.exc_info = sys.exc_info()

    entry = json.loads(JsonLogFormatter().format(record))
    assert entry["exception_type"] == "ValueError"
    assert entry["exception_message"] == "bad bytes"


def test_text_format_shows_queue_context():
    formatter = logging.Formatter(TEXT_FORMAT)
    context_filter = QueueContextFilter()

    idle = make_record("Queue processing enabled")
    context_filter.filter(idle)
    assert "[-@-] Queue processing enabled" in formatter.format(idle)

    with job_context("item-7", "cl-1"):
        busy = make_record("Upload failed")
        context_filter.filter(busy)
    assert "[item-7@cl-1] Upload failed" in formatter.format(busy)


def test_setup_logging_json_outside_local(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "production")
    monkeypatch.setattr(settings, "LOG_LEVEL", "warning")

    setup_logging()

    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert isinstance(root.handlers[0].formatter, JsonLogFormatter)
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING


def test_setup_logging_local_text(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "local")

    setup_logging()

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert not isinstance(root.handlers[0].formatter, JsonLogFormatter)
    assert any(isinstance(f, QueueContextFilter) for f in root.handlers[0].filters)
