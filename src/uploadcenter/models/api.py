"""Request and response models for the HTTP API."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from uploadcenter.models.queue import (
    CompressionSettings,
    ItemStatus,
    Provider,
    QueueItem,
    VideoSettings,
)
from uploadcenter.queue.events import NotificationLevel, QueueEvent


class QueueItemResponse(BaseModel):
    """Response model for one queue item."""

    id: str
    name: str
    status: ItemStatus
    progress: int
    source_url: Optional[str] = None
    original_size: int
    final_size: Optional[int] = None
    file_type: Optional[str] = None
    custom_name: Optional[str] = None
    compression_settings: CompressionSettings
    video_settings: VideoSettings
    url: Optional[str] = None
    file_id: Optional[str] = None
    error: Optional[str] = None
    persist_error: Optional[str] = None
    attempts: int = 0
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_item(cls, item: QueueItem) -> "QueueItemResponse":
        return cls(
            id=item.id,
            name=item.display_name,
            status=item.status,
            progress=item.progress,
            source_url=item.source_url,
            original_size=item.original_size,
            final_size=item.final_size,
            file_type=item.file_type,
            custom_name=item.custom_name,
            compression_settings=item.compression_settings,
            video_settings=item.video_settings,
            url=item.url,
            file_id=item.file_id,
            error=item.error,
            persist_error=item.persist_error,
            attempts=item.attempts,
            created_at=item.created_at,
            completed_at=item.completed_at,
        )


class QueueSnapshotResponse(BaseModel):
    """Response model for the whole queue."""

    processing: bool
    active_account_id: Optional[str] = None
    exhausted_account_ids: List[str]
    selected_category_id: Optional[str] = None
    items: List[QueueItemResponse]


class RejectedFile(BaseModel):
    name: str
    error: str


class EnqueueResponse(BaseModel):
    """Response model for file/URL enqueue requests."""

    added: List[QueueItemResponse]
    rejected: List[RejectedFile] = []


class EnqueueUrlRequest(BaseModel):
    """Request model for queueing a remote file."""

    source_url: str
    custom_name: Optional[str] = None
    video_settings: Optional[VideoSettings] = None


class UpdateItemRequest(BaseModel):
    """Request model for editing a queued item.

    Omitted fields are left unchanged; an empty ``custom_name`` is replaced
    with a random short name, ``null`` restores the original name.
    """

    custom_name: Optional[str] = None
    compression_settings: Optional[CompressionSettings] = None
    video_settings: Optional[VideoSettings] = None


class RetryResponse(BaseModel):
    retried: int


class ClearResponse(BaseModel):
    removed: int


class AccountResponse(BaseModel):
    """Storage account as seen by the queue."""

    id: str
    name: str
    provider: Provider
    url_endpoint: Optional[str] = None
    active: bool
    exhausted: bool


class CategoryResponse(BaseModel):
    id: str
    name: str
    color: Optional[str] = None
    icon: Optional[str] = None
    selected: bool = False


class SelectCategoryRequest(BaseModel):
    category_id: Optional[str] = None


class NotificationResponse(BaseModel):
    level: NotificationLevel
    message: str
    item_id: Optional[str] = None
    timestamp: datetime

    @classmethod
    def from_event(cls, event: QueueEvent) -> "NotificationResponse":
        return cls(
            level=event.level or NotificationLevel.INFO,
            message=event.message or "",
            item_id=event.item_id,
            timestamp=event.timestamp,
        )
