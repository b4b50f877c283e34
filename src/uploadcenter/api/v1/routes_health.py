"""Liveness endpoint with a summary of the upload queue."""

from collections import Counter

from fastapi import APIRouter, Depends

from uploadcenter.api.dependencies import get_engine
from uploadcenter.core.config import settings
from uploadcenter.models.queue import ItemStatus
from uploadcenter.queue.engine import UploadQueueEngine

router = APIRouter()


@router.get("/health")
async def health_check(engine: UploadQueueEngine = Depends(get_engine)) -> dict:
    """Report liveness, whether uploads can run, and how many items sit in each state.

    ``status`` stays "ok" while the process answers; ``ready`` is false
    until an active, non-exhausted storage account is selected.
    """
    active = engine.active_account
    counts = Counter(item.status for item in engine.items())
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "ready": active is not None and active.id not in engine.exhausted_accounts,
        "processing": engine.is_processing,
        "active_account_id": active.id if active else None,
        "accounts_loaded": len(engine.accounts),
        "exhausted_accounts": len(engine.exhausted_accounts),
        "queue": {status.value: counts.get(status, 0) for status in ItemStatus},
    }
