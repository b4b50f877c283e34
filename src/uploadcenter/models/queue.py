"""Upload queue data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ItemStatus(str, Enum):
    """Queue item status enumeration."""

    PENDING = "pending"  # Waiting for the driver
    COMPRESSING = "compressing"  # Local re-encode in progress
    UPLOADING = "uploading"  # Provider upload in progress
    SUCCESS = "success"  # Uploaded (and persisted, unless persist_error is set)
    ERROR = "error"  # Failed, parked at the tail until the user acts


ACTIVE_STATUSES = frozenset({ItemStatus.COMPRESSING, ItemStatus.UPLOADING})


class Provider(str, Enum):
    """Supported media storage providers."""

    IMAGEKIT = "imagekit"
    CLOUDINARY = "cloudinary"


class CompressionSettings(BaseModel):
    """Per-item image re-encode options."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    format: Literal["original", "webp", "jpeg", "png"] = "original"
    quality: int = Field(80, ge=0, le=100)


class VideoSettings(BaseModel):
    """Per-item ImageKit video transformation options."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    format: Literal["original", "mp4", "webm"] = "original"
    quality: Literal["auto", "high", "medium", "low"] = "auto"


class StorageAccount(BaseModel):
    """A configured upload destination. Secrets never reach this model."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    provider: Provider = Provider.IMAGEKIT
    is_active: bool = True
    public_key: Optional[str] = None
    url_endpoint: Optional[str] = None


class Category(BaseModel):
    """Optional tag applied to persisted file records."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    color: Optional[str] = None
    icon: Optional[str] = None


@dataclass
class SourceFile:
    """A local binary blob selected for upload."""

    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class QueueItem:
    """One requested upload and its progress through the queue."""

    id: str
    status: ItemStatus
    original_size: int
    created_at: datetime
    file: Optional[SourceFile] = None
    source_url: Optional[str] = None
    processed_file: Optional[SourceFile] = None
    progress: int = 0
    final_size: Optional[int] = None
    file_type: Optional[str] = None
    custom_name: Optional[str] = None
    compression_settings: CompressionSettings = field(default_factory=CompressionSettings)
    video_settings: VideoSettings = field(default_factory=VideoSettings)
    url: Optional[str] = None
    file_id: Optional[str] = None
    error: Optional[str] = None
    persist_error: Optional[str] = None
    attempts: int = 0
    completed_at: Optional[datetime] = None

    @property
    def is_url(self) -> bool:
        return self.source_url is not None

    @property
    def display_name(self) -> str:
        """Name shown in notifications."""
        if self.custom_name:
            return self.custom_name
        if self.file is not None:
            return self.file.name
        return self.source_url or self.id

    def upload_source(self) -> SourceFile | str:
        """Return what should be sent to the provider: processed bytes, original bytes or URL."""
        if self.source_url is not None:
            return self.source_url
        if self.processed_file is not None:
            return self.processed_file
        if self.file is None:
            raise ValueError(f"Queue item {self.id} has neither a file nor a source URL")
        return self.file
