"""Events published by the upload queue engine."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from uploadcenter.models.queue import ItemStatus


class EventType(str, Enum):
    """Kinds of queue events."""

    ITEM_UPDATED = "item_updated"  # status/progress/result of one item changed
    QUEUE_CHANGED = "queue_changed"  # items added, removed or reordered
    ACCOUNT_CHANGED = "account_changed"  # active storage account switched
    PROCESSING_CHANGED = "processing_changed"  # processing mode toggled
    NOTIFICATION = "notification"  # user-facing message
    COMPLETED = "completed"  # no pending items left


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class QueueEvent:
    """A change in engine state, delivered to subscribers synchronously."""

    type: EventType
    item_id: Optional[str] = None
    status: Optional[ItemStatus] = None
    message: Optional[str] = None
    level: Optional[NotificationLevel] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[QueueEvent], None]
