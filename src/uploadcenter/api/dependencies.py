"""Shared FastAPI dependencies."""

from typing import Optional

from uploadcenter.backend.client import BackendClient
from uploadcenter.queue.engine import UploadQueueEngine

_engine: Optional[UploadQueueEngine] = None


def get_engine() -> UploadQueueEngine:
    """Process-wide queue engine, created on first use."""
    global _engine
    if _engine is None:
        _engine = UploadQueueEngine(BackendClient())
    return _engine
