"""Sequential upload queue engine.

The engine owns an ordered list of queue items and drives them one at a
time through compression, provider upload and metadata persistence. A
single driver task picks the first ``pending`` item whenever processing
is enabled and nothing is active; every finished item hands control back
to the driver, which picks the next one.

Failures never stop the queue. Quota errors exhaust the current account
and, when another active account of the same provider exists, switch to
it and requeue the item as ``pending`` at the tail. Every other failure
parks the item at the tail as ``error`` until the user acts.
"""

import asyncio
import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Iterable, List, Optional
from uuid import uuid4

from uploadcenter.backend.client import BackendClient
from uploadcenter.core.config import settings
from uploadcenter.core.exceptions import (
    AccountUnavailableError,
    BackendError,
    CategoryNotFoundError,
    CompressionError,
    ConfigInvalidError,
    FileValidationError,
    QueueItemNotFoundError,
    QueueStateError,
    QuotaExceededError,
    UnknownUploadError,
    UploadError,
)
from uploadcenter.core.logging import job_context
from uploadcenter.models.queue import (
    ACTIVE_STATUSES,
    Category,
    CompressionSettings,
    ItemStatus,
    Provider,
    QueueItem,
    SourceFile,
    StorageAccount,
    VideoSettings,
)
from uploadcenter.providers.base import UploadRequest, UploadResult
from uploadcenter.providers.factory import ProviderRegistry
from uploadcenter.queue.events import EventType, NotificationLevel, QueueEvent, Subscriber
from uploadcenter.queue.naming import name_from_url, random_short_name, resolve_file_name
from uploadcenter.queue.validation import (
    guess_mime_type,
    is_video,
    resolve_content_type,
    validate_file,
    validate_source_url,
)
from uploadcenter.services.compression import compress_image_async, should_compress

logger = logging.getLogger(__name__)

Compressor = Callable[[SourceFile, CompressionSettings], Awaitable[SourceFile]]

_UNSET: Any = object()

PROGRESS_COMPRESSING = 30
PROGRESS_UPLOADING = 50
PROGRESS_DONE = 100

_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


@dataclass
class EnqueueResult:
    """Outcome of a batch enqueue: what entered the queue, what was rejected."""

    added: List[QueueItem] = field(default_factory=list)
    rejected: List[tuple[str, str]] = field(default_factory=list)


class UploadQueueEngine:
    """Owns the upload queue and the single driver that processes it."""

    def __init__(
        self,
        backend: BackendClient,
        providers: ProviderRegistry | None = None,
        compressor: Compressor | None = None,
    ):
        self.backend = backend
        self.providers = providers or ProviderRegistry(backend)
        self._compressor: Compressor = compressor or compress_image_async

        self._items: List[QueueItem] = []
        self._exhausted: set[str] = set()
        self._accounts: List[StorageAccount] = []
        self._active_account_id: Optional[str] = None
        self._categories: List[Category] = []
        self._category_id: Optional[str] = None

        self._processing = False
        self._driver: Optional[asyncio.Task] = None
        self._subscribers: List[Subscriber] = []
        self._notifications: Deque[QueueEvent] = deque(maxlen=100)

        self.default_compression = CompressionSettings(quality=settings.DEFAULT_COMPRESSION_QUALITY)
        self.default_video = VideoSettings()

    # ------------------------------------------------------------------
    # State inspection
    # ------------------------------------------------------------------

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def accounts(self) -> List[StorageAccount]:
        return list(self._accounts)

    @property
    def active_account(self) -> Optional[StorageAccount]:
        return self._find_account(self._active_account_id)

    @property
    def exhausted_accounts(self) -> frozenset[str]:
        return frozenset(self._exhausted)

    @property
    def categories(self) -> List[Category]:
        return list(self._categories)

    @property
    def selected_category_id(self) -> Optional[str]:
        return self._category_id

    def items(self) -> List[QueueItem]:
        """Copies of the queue items, in queue order."""
        return [copy.copy(item) for item in self._items]

    def get(self, item_id: str) -> QueueItem:
        return copy.copy(self._get_item(item_id))

    def active_item(self) -> Optional[QueueItem]:
        for item in self._items:
            if item.status in ACTIVE_STATUSES:
                return copy.copy(item)
        return None

    def notifications(self) -> List[QueueEvent]:
        """Most recent user-facing notifications, oldest first."""
        return list(self._notifications)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for queue events.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, event: QueueEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Queue subscriber failed",
                    extra={"event_type": event.type.value},
                )

    def _notify(self, level: NotificationLevel, message: str, item_id: str | None = None) -> None:
        logger.log(_LOG_LEVELS[level], message, extra={"item_id": item_id})
        event = QueueEvent(
            type=EventType.NOTIFICATION,
            item_id=item_id,
            message=message,
            level=level,
        )
        self._notifications.append(event)
        self._emit(event)

    # ------------------------------------------------------------------
    # Accounts and categories
    # ------------------------------------------------------------------

    def set_accounts(self, accounts: Iterable[StorageAccount]) -> None:
        """Replace the known accounts, keeping the selection when it is still valid."""
        self._accounts = [account for account in accounts if account.is_active]
        current = self.active_account
        if current is None or current.id in self._exhausted:
            fallback = next(
                (a for a in self._accounts if a.id not in self._exhausted),
                None,
            )
            self._set_active_account(fallback.id if fallback else None)

    async def load_accounts(self) -> List[StorageAccount]:
        """Fetch active accounts from the Backend."""
        accounts = await self.backend.list_storage_accounts()
        self.set_accounts(accounts)
        return self.accounts

    def select_account(self, account_id: str) -> StorageAccount:
        """Make an account the upload destination.

        Raises:
            AccountUnavailableError: If the account is unknown or exhausted
        """
        account = self._find_account(account_id)
        if account is None:
            raise AccountUnavailableError(f"Storage account {account_id} not found")
        if account.id in self._exhausted:
            raise AccountUnavailableError(
                f"Storage account {account.name} reached its limit in this session"
            )
        self._set_active_account(account.id)
        return account

    def reset_exhausted(self) -> None:
        """Forget exhausted accounts, e.g. after the user upgraded a plan."""
        self._exhausted.clear()
        logger.info("Exhausted account set cleared")

    def set_categories(self, categories: Iterable[Category]) -> None:
        self._categories = list(categories)
        if self._category_id and self._find_category(self._category_id) is None:
            self._category_id = None

    async def load_categories(self) -> List[Category]:
        categories = await self.backend.list_categories()
        self.set_categories(categories)
        return self.categories

    def select_category(self, category_id: Optional[str]) -> None:
        """Tag subsequently persisted files with a category (None clears it)."""
        if category_id is not None and self._find_category(category_id) is None:
            raise CategoryNotFoundError(f"Category {category_id} not found")
        self._category_id = category_id

    def _find_account(self, account_id: Optional[str]) -> Optional[StorageAccount]:
        if account_id is None:
            return None
        return next((a for a in self._accounts if a.id == account_id), None)

    def _find_category(self, category_id: str) -> Optional[Category]:
        return next((c for c in self._categories if c.id == category_id), None)

    def _set_active_account(self, account_id: Optional[str]) -> None:
        if account_id == self._active_account_id:
            return
        self._active_account_id = account_id
        logger.info("Active storage account changed", extra={"account_id": account_id})
        self._emit(QueueEvent(type=EventType.ACCOUNT_CHANGED, message=account_id))

    def _find_alternate_account(self, exhausted: StorageAccount) -> Optional[StorageAccount]:
        """First active, non-exhausted account sharing the exhausted account's provider."""
        return next(
            (
                account
                for account in self._accounts
                if account.provider == exhausted.provider
                and account.id != exhausted.id
                and account.id not in self._exhausted
                and account.is_active
            ),
            None,
        )

    # ------------------------------------------------------------------
    # Queue mutation (user actions)
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_custom_name(custom_name: Optional[str]) -> Optional[str]:
        """None keeps the original name; a blank name becomes a random short one."""
        if custom_name is None:
            return None
        if not custom_name.strip():
            return random_short_name()
        return custom_name.strip()

    def enqueue_file(
        self,
        file: SourceFile,
        custom_name: Optional[str] = None,
        compression_settings: CompressionSettings | None = None,
        video_settings: VideoSettings | None = None,
    ) -> QueueItem:
        """Validate a local file and append it to the queue.

        Raises:
            FileValidationError: If the file is rejected (a notification is raised too)
        """
        file = SourceFile(
            name=file.name,
            content_type=resolve_content_type(file.name, file.content_type),
            data=file.data,
        )
        try:
            validate_file(file)
        except FileValidationError as e:
            self._notify(NotificationLevel.ERROR, str(e))
            raise

        item = QueueItem(
            id=str(uuid4()),
            status=ItemStatus.PENDING,
            original_size=file.size,
            created_at=datetime.now(timezone.utc),
            file=file,
            file_type=file.content_type,
            custom_name=self._normalize_custom_name(custom_name),
            compression_settings=compression_settings or self.default_compression,
            video_settings=video_settings or self.default_video,
        )
        self._append(item)
        return copy.copy(item)

    def enqueue_files(
        self,
        files: Iterable[SourceFile],
        compression_settings: CompressionSettings | None = None,
        video_settings: VideoSettings | None = None,
    ) -> EnqueueResult:
        """Enqueue several files; invalid ones are reported, not raised."""
        result = EnqueueResult()
        for file in files:
            try:
                result.added.append(
                    self.enqueue_file(
                        file,
                        compression_settings=compression_settings,
                        video_settings=video_settings,
                    )
                )
            except FileValidationError as e:
                result.rejected.append((file.name, str(e)))
        return result

    def enqueue_url(
        self,
        source_url: str,
        custom_name: Optional[str] = None,
        video_settings: VideoSettings | None = None,
    ) -> QueueItem:
        """Append a remote file (fetched by the provider) to the queue.

        Raises:
            FileValidationError: If the URL is not an absolute http(s) URL
        """
        try:
            source_url = validate_source_url(source_url)
        except FileValidationError as e:
            self._notify(NotificationLevel.ERROR, str(e))
            raise

        item = QueueItem(
            id=str(uuid4()),
            status=ItemStatus.PENDING,
            original_size=0,
            created_at=datetime.now(timezone.utc),
            source_url=source_url,
            file_type=guess_mime_type(name_from_url(source_url)),
            custom_name=self._normalize_custom_name(custom_name),
            compression_settings=self.default_compression,
            video_settings=video_settings or self.default_video,
        )
        self._append(item)
        return copy.copy(item)

    def update_item(
        self,
        item_id: str,
        custom_name: Optional[str] = _UNSET,
        compression_settings: CompressionSettings | None = None,
        video_settings: VideoSettings | None = None,
    ) -> QueueItem:
        """Edit an item's name or settings before it is processed.

        Raises:
            QueueItemNotFoundError: If the item does not exist
            QueueStateError: If the item is active or already uploaded
        """
        item = self._get_item(item_id)
        if item.status not in (ItemStatus.PENDING, ItemStatus.ERROR):
            raise QueueStateError(f"Item {item_id} is {item.status.value} and can no longer be edited")

        if custom_name is not _UNSET:
            item.custom_name = self._normalize_custom_name(custom_name)
        if compression_settings is not None:
            item.compression_settings = compression_settings
        if video_settings is not None:
            item.video_settings = video_settings

        self._emit(QueueEvent(type=EventType.ITEM_UPDATED, item_id=item.id, status=item.status))
        return copy.copy(item)

    def remove(self, item_id: str) -> None:
        """Remove an item. The active item cannot be removed.

        Raises:
            QueueItemNotFoundError: If the item does not exist
            QueueStateError: If the item is being compressed or uploaded
        """
        item = self._get_item(item_id)
        if item.status in ACTIVE_STATUSES:
            raise QueueStateError(f"Item {item_id} is {item.status.value} and cannot be removed")
        self._items.remove(item)
        self._emit(QueueEvent(type=EventType.QUEUE_CHANGED, item_id=item_id))

    def clear(self) -> int:
        """Remove every item.

        Returns:
            Number of removed items

        Raises:
            QueueStateError: If an item is being compressed or uploaded
        """
        if any(item.status in ACTIVE_STATUSES for item in self._items):
            raise QueueStateError("Cannot clear the queue while an upload is in progress")
        removed = len(self._items)
        self._items.clear()
        self._emit(QueueEvent(type=EventType.QUEUE_CHANGED))
        return removed

    def retry(self, item_id: str) -> QueueItem:
        """Return a failed item to ``pending`` so the driver picks it up again.

        Raises:
            QueueItemNotFoundError: If the item does not exist
            QueueStateError: If the item is not in ``error``
        """
        item = self._get_item(item_id)
        if item.status != ItemStatus.ERROR:
            raise QueueStateError(f"Only failed items can be retried (item is {item.status.value})")
        self._reset_for_retry(item)
        self._emit(QueueEvent(type=EventType.ITEM_UPDATED, item_id=item.id, status=item.status))
        return copy.copy(item)

    def retry_failed(self) -> int:
        """Return every failed item to ``pending``. Returns how many were reset."""
        failed = [item for item in self._items if item.status == ItemStatus.ERROR]
        for item in failed:
            self._reset_for_retry(item)
            self._emit(QueueEvent(type=EventType.ITEM_UPDATED, item_id=item.id, status=item.status))
        return len(failed)

    def _append(self, item: QueueItem) -> None:
        self._items.append(item)
        logger.info(
            "Item queued",
            extra={
                "item_id": item.id,
                "file_type": item.file_type,
                "original_size": item.original_size,
                "is_url": item.is_url,
            },
        )
        self._emit(QueueEvent(type=EventType.QUEUE_CHANGED, item_id=item.id, status=item.status))

    def _get_item(self, item_id: str) -> QueueItem:
        for item in self._items:
            if item.id == item_id:
                return item
        raise QueueItemNotFoundError(f"Queue item {item_id} not found")

    @staticmethod
    def _source_type(item: QueueItem) -> Optional[str]:
        if item.file is not None:
            return item.file.content_type
        if item.source_url is not None:
            return guess_mime_type(name_from_url(item.source_url))
        return None

    def _reset_for_retry(self, item: QueueItem) -> None:
        item.status = ItemStatus.PENDING
        item.progress = 0
        item.error = None
        item.attempts = 0

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Enable processing and make sure the driver is running.

        Must be called from within a running event loop.
        """
        self._set_processing(True)
        if self._driver is None or self._driver.done():
            self._driver = asyncio.get_running_loop().create_task(self._drive())

    def pause(self) -> None:
        """Stop picking new items. The in-flight item still runs to completion."""
        self._set_processing(False)

    async def wait_idle(self) -> None:
        """Wait until the driver has stopped."""
        if self._driver is not None:
            await asyncio.shield(self._driver)

    async def aclose(self) -> None:
        self.pause()
        await self.wait_idle()

    def _set_processing(self, enabled: bool) -> None:
        if enabled == self._processing:
            return
        self._processing = enabled
        logger.info("Queue processing %s", "enabled" if enabled else "disabled")
        self._emit(QueueEvent(type=EventType.PROCESSING_CHANGED, message="on" if enabled else "off"))

    def _next_pending(self) -> Optional[QueueItem]:
        return next((item for item in self._items if item.status == ItemStatus.PENDING), None)

    async def _drive(self) -> None:
        while self._processing:
            item = self._next_pending()
            if item is None:
                self._set_processing(False)
                self._notify(NotificationLevel.SUCCESS, "All queued uploads have been processed")
                self._emit(QueueEvent(type=EventType.COMPLETED))
                break
            await self._process_item(item)

    # ------------------------------------------------------------------
    # Per-item processing
    # ------------------------------------------------------------------

    def _update(self, item: QueueItem, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(item, name, value)
        self._emit(QueueEvent(type=EventType.ITEM_UPDATED, item_id=item.id, status=item.status))

    async def _process_item(self, item: QueueItem) -> None:
        account = self.active_account
        with job_context(item.id, account.id if account else None):
            try:
                if account is None:
                    raise ConfigInvalidError("No active storage account selected")
                provider = self.providers.for_account(account)

                await self._prepare(item, account)
                self._update(item, status=ItemStatus.UPLOADING, progress=PROGRESS_UPLOADING)

                file_name = self._target_file_name(item)
                request = UploadRequest(
                    file_name=file_name,
                    source=item.upload_source(),
                    content_type=item.file_type or "application/octet-stream",
                    video_settings=item.video_settings,
                )
                result = await provider.send(request, account)
            except UploadError as e:
                await self._handle_failure(item, account, e)
                return
            except Exception as e:
                logger.error(
                    "Unexpected error while processing queue item",
                    extra={"item_id": item.id, "error": str(e)},
                    exc_info=True,
                )
                await self._handle_failure(item, account, UnknownUploadError(str(e) or type(e).__name__))
                return

            self._complete(item, result)
            await self._persist(item, account, file_name)

    async def _prepare(self, item: QueueItem, account: StorageAccount) -> None:
        """Compression step. Skipped for URLs and for items no setting applies to."""
        if item.file is None:
            return

        compress = should_compress(item.file, item.compression_settings)
        # Video optimization is an ImageKit URL transformation, nothing runs locally
        video = (
            is_video(item.file_type)
            and item.video_settings.enabled
            and account.provider == Provider.IMAGEKIT
        )
        if not (compress or video):
            return

        self._update(item, status=ItemStatus.COMPRESSING, progress=0)
        self._update(item, progress=PROGRESS_COMPRESSING)

        if not compress:
            return

        try:
            processed = await self._compressor(item.file, item.compression_settings)
        except CompressionError as e:
            logger.warning(
                "Compression failed, uploading original file",
                extra={"item_id": item.id, "error": str(e)},
            )
            return

        item.processed_file = processed
        item.final_size = processed.size
        item.file_type = processed.content_type
        logger.info(
            "Image compressed",
            extra={
                "item_id": item.id,
                "original_size": item.original_size,
                "compressed_size": processed.size,
                "format": item.compression_settings.format,
            },
        )

    @staticmethod
    def _target_file_name(item: QueueItem) -> str:
        if item.source_url is not None:
            base_name = name_from_url(item.source_url)
        else:
            base_name = (item.processed_file or item.file).name
        return resolve_file_name(base_name, item.custom_name)

    def _complete(self, item: QueueItem, result: UploadResult) -> None:
        if result.size is not None:
            final_size = result.size
        elif item.final_size is not None:
            final_size = item.final_size
        else:
            final_size = item.original_size

        self._update(
            item,
            status=ItemStatus.SUCCESS,
            progress=PROGRESS_DONE,
            url=result.url,
            file_id=result.external_id,
            final_size=final_size,
            file_type=result.file_type or item.file_type,
            error=None,
            completed_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Upload succeeded",
            extra={"item_id": item.id, "url": result.url, "final_size": final_size},
        )

    async def _persist(self, item: QueueItem, account: StorageAccount, file_name: str) -> None:
        """Save the uploaded file's metadata to the Backend.

        The file already exists at the provider, so a failed write leaves the
        item in ``success`` with ``persist_error`` set instead of failing it.
        """
        record: dict[str, Any] = {
            "name": file_name,
            "size": item.final_size,
            "file_type": item.file_type or "application/octet-stream",
            "storage_account_id": account.id,
            "url": item.url,
            "file_id": item.file_id,
        }
        if self._category_id:
            record["category_ids"] = [self._category_id]

        try:
            await self.backend.create_file(record)
        except BackendError as e:
            logger.error(
                "File uploaded but metadata could not be saved",
                extra={"item_id": item.id, "url": item.url, "error": str(e)},
            )
            self._update(item, persist_error=str(e))
            self._notify(
                NotificationLevel.WARNING,
                f"{file_name} was uploaded but could not be saved to the file list: {e}",
                item_id=item.id,
            )
            return

        await self.backend.create_activity_log(
            "file_uploaded",
            {"file_name": file_name, "storage_account_id": account.id, "url": item.url},
        )

    async def _handle_failure(
        self, item: QueueItem, account: Optional[StorageAccount], error: UploadError
    ) -> None:
        message = str(error) or "Upload failed"
        logger.warning(
            "Upload failed",
            extra={
                "item_id": item.id,
                "account_id": account.id if account else None,
                "error": message,
                "error_kind": type(error).__name__,
            },
        )

        if isinstance(error, QuotaExceededError) and account is not None:
            if await self._fail_over(item, account):
                return

        if isinstance(error, ConfigInvalidError):
            self._notify(NotificationLevel.ERROR, message, item_id=item.id)

        self._requeue(item, ItemStatus.ERROR, error=message)
        self._notify(
            NotificationLevel.ERROR,
            f"Failed to upload {item.display_name}: {message}. Item moved to the end of the queue.",
            item_id=item.id,
        )

    async def _fail_over(self, item: QueueItem, account: StorageAccount) -> bool:
        """Exhaust the account and requeue the item under an alternate one.

        Returns:
            True when the item was requeued as pending under a new account
        """
        self._exhausted.add(account.id)
        self._notify(
            NotificationLevel.WARNING,
            f"Account {account.name} reached its limit. Trying to switch accounts...",
            item_id=item.id,
        )
        await self.backend.create_activity_log(
            "account_exhausted",
            {"account_name": account.name, "provider": account.provider.value},
        )

        if item.attempts >= settings.MAX_FAILOVER_ATTEMPTS:
            self._notify(
                NotificationLevel.ERROR,
                f"{item.display_name} hit account limits {item.attempts + 1} times, giving up.",
                item_id=item.id,
            )
            return False

        alternate = self._find_alternate_account(account)
        if alternate is None:
            self._notify(
                NotificationLevel.ERROR,
                f"No backup account is available for provider {account.provider.value}.",
                item_id=item.id,
            )
            return False

        self._set_active_account(alternate.id)
        self._notify(NotificationLevel.INFO, f"Switched to account: {alternate.name}", item_id=item.id)
        item.attempts += 1
        self._requeue(item, ItemStatus.PENDING)
        return True

    def _requeue(self, item: QueueItem, status: ItemStatus, error: Optional[str] = None) -> None:
        """Move an item to the tail with a fresh pass state."""
        self._items.remove(item)
        item.status = status
        item.progress = 0
        item.error = error
        item.processed_file = None
        item.final_size = None
        item.url = None
        item.file_id = None
        item.file_type = self._source_type(item)
        self._items.append(item)
        self._emit(QueueEvent(type=EventType.QUEUE_CHANGED, item_id=item.id, status=status))
