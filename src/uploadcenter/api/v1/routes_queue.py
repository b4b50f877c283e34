"""Upload queue API routes."""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Request, UploadFile

from uploadcenter.api.dependencies import get_engine
from uploadcenter.core.exceptions import (
    FileValidationError,
    QueueItemNotFoundError,
    QueueStateError,
)
from uploadcenter.models.api import (
    ClearResponse,
    EnqueueResponse,
    EnqueueUrlRequest,
    NotificationResponse,
    QueueItemResponse,
    QueueSnapshotResponse,
    RejectedFile,
    RetryResponse,
    UpdateItemRequest,
)
from uploadcenter.models.queue import CompressionSettings, SourceFile, VideoSettings
from uploadcenter.queue.engine import UploadQueueEngine

router = APIRouter(prefix="/api/v1/queue", tags=["queue"])
logger = logging.getLogger(__name__)


def _snapshot(engine: UploadQueueEngine) -> QueueSnapshotResponse:
    active = engine.active_account
    return QueueSnapshotResponse(
        processing=engine.is_processing,
        active_account_id=active.id if active else None,
        exhausted_account_ids=sorted(engine.exhausted_accounts),
        selected_category_id=engine.selected_category_id,
        items=[QueueItemResponse.from_item(item) for item in engine.items()],
    )


@router.get("", response_model=QueueSnapshotResponse)
async def get_queue(engine: UploadQueueEngine = Depends(get_engine)) -> QueueSnapshotResponse:
    """Return every queue item plus processing state."""
    return _snapshot(engine)


@router.get("/notifications", response_model=List[NotificationResponse])
async def get_notifications(
    engine: UploadQueueEngine = Depends(get_engine),
) -> List[NotificationResponse]:
    return [NotificationResponse.from_event(event) for event in engine.notifications()]


@router.post("/files", response_model=EnqueueResponse, status_code=201)
async def enqueue_files(
    request: Request,
    files: List[UploadFile] = File(...),
    custom_name: Optional[str] = Form(None),
    compression_enabled: bool = Form(False),
    compression_format: Literal["original", "webp", "jpeg", "png"] = Form("original"),
    compression_quality: int = Form(80),
    video_enabled: bool = Form(False),
    video_format: Literal["original", "mp4", "webm"] = Form("original"),
    video_quality: Literal["auto", "high", "medium", "low"] = Form("auto"),
    engine: UploadQueueEngine = Depends(get_engine),
) -> EnqueueResponse:
    """Validate and queue one or more files.

    ``custom_name`` only applies when a single file is sent. Sending it
    empty asks for a random short name; omitting it keeps the original.
    """
    try:
        # Form() maps an empty field to its default, so check the raw form
        form = await request.form()
        if "custom_name" in form:
            custom_name = str(form["custom_name"])

        if not 0 <= compression_quality <= 100:
            raise HTTPException(status_code=400, detail="compression_quality must be between 0 and 100")

        compression = CompressionSettings(
            enabled=compression_enabled, format=compression_format, quality=compression_quality
        )
        video = VideoSettings(enabled=video_enabled, format=video_format, quality=video_quality)

        response = EnqueueResponse(added=[], rejected=[])
        for upload in files:
            source = SourceFile(
                name=upload.filename or "unnamed",
                content_type=upload.content_type or "",
                data=await upload.read(),
            )
            try:
                item = engine.enqueue_file(
                    source,
                    custom_name=custom_name if len(files) == 1 else None,
                    compression_settings=compression,
                    video_settings=video,
                )
            except FileValidationError as e:
                response.rejected.append(RejectedFile(name=source.name, error=str(e)))
                continue
            response.added.append(QueueItemResponse.from_item(item))

        if not response.added:
            raise HTTPException(
                status_code=400,
                detail="; ".join(f"{r.name}: {r.error}" for r in response.rejected) or "No files received",
            )

        logger.info(
            f"Files queued: added={len(response.added)}, rejected={len(response.rejected)}"
        )
        return response

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error while queueing files: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/urls", response_model=QueueItemResponse, status_code=201)
async def enqueue_url(
    request: EnqueueUrlRequest = Body(...),
    engine: UploadQueueEngine = Depends(get_engine),
) -> QueueItemResponse:
    """Queue a remote file that the provider fetches itself."""
    try:
        item = engine.enqueue_url(
            request.source_url,
            custom_name=request.custom_name,
            video_settings=request.video_settings,
        )
    except FileValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return QueueItemResponse.from_item(item)


@router.post("/start", response_model=QueueSnapshotResponse)
async def start_processing(engine: UploadQueueEngine = Depends(get_engine)) -> QueueSnapshotResponse:
    engine.start()
    return _snapshot(engine)


@router.post("/pause", response_model=QueueSnapshotResponse)
async def pause_processing(engine: UploadQueueEngine = Depends(get_engine)) -> QueueSnapshotResponse:
    engine.pause()
    return _snapshot(engine)


@router.post("/retry-failed", response_model=RetryResponse)
async def retry_failed(engine: UploadQueueEngine = Depends(get_engine)) -> RetryResponse:
    return RetryResponse(retried=engine.retry_failed())


@router.patch("/{item_id}", response_model=QueueItemResponse)
async def update_item(
    item_id: str,
    request: UpdateItemRequest = Body(...),
    engine: UploadQueueEngine = Depends(get_engine),
) -> QueueItemResponse:
    """Edit the target name or settings of a pending or failed item."""
    changes = {}
    if "custom_name" in request.model_fields_set:
        changes["custom_name"] = request.custom_name
    try:
        item = engine.update_item(
            item_id,
            compression_settings=request.compression_settings,
            video_settings=request.video_settings,
            **changes,
        )
    except QueueItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except QueueStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return QueueItemResponse.from_item(item)


@router.post("/{item_id}/retry", response_model=QueueItemResponse)
async def retry_item(
    item_id: str,
    engine: UploadQueueEngine = Depends(get_engine),
) -> QueueItemResponse:
    try:
        item = engine.retry(item_id)
    except QueueItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except QueueStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return QueueItemResponse.from_item(item)


@router.delete("/{item_id}", status_code=204)
async def remove_item(
    item_id: str,
    engine: UploadQueueEngine = Depends(get_engine),
) -> None:
    try:
        engine.remove(item_id)
    except QueueItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except QueueStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("", response_model=ClearResponse)
async def clear_queue(engine: UploadQueueEngine = Depends(get_engine)) -> ClearResponse:
    try:
        removed = engine.clear()
    except QueueStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ClearResponse(removed=removed)
