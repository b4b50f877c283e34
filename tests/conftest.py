"""Pytest configuration and shared fixtures."""

import asyncio
import io
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from uploadcenter.backend.client import BackendClient
from uploadcenter.models.queue import Provider, SourceFile, StorageAccount
from uploadcenter.providers.base import UploadProvider, UploadRequest, UploadResult
from uploadcenter.providers.factory import ProviderRegistry
from uploadcenter.queue.engine import UploadQueueEngine
from uploadcenter.queue.events import QueueEvent


class FakeProvider(UploadProvider):
    """In-memory provider that records every upload request.

    ``outcomes`` maps an account id to a list of exceptions/results that
    are consumed one per call; once empty, uploads succeed.
    """

    def __init__(self, backend, name: str = "fake"):
        super().__init__(backend)
        self.name = name
        self.outcomes: Dict[str, List[Any]] = {}
        self.calls: List[tuple[str, UploadRequest]] = []
        self.started = asyncio.Event()
        self.release: asyncio.Event | None = None

    async def authorize(self, file_name: str, account: StorageAccount) -> Any:
        return {"account": account.id}

    async def upload(self, request: UploadRequest, authorization: Any, account: StorageAccount) -> UploadResult:
        self.calls.append((account.id, request))
        self.started.set()
        if self.release is not None:
            await self.release.wait()

        queued = self.outcomes.get(account.id)
        if queued:
            outcome = queued.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        size = len(request.source) if isinstance(request.source, str) else len(request.source.data)
        return UploadResult(
            url=f"https://cdn.example.com/{account.id}/{request.file_name}",
            external_id=f"{account.id}-{len(self.calls)}",
            size=size,
        )

    def get_provider_name(self) -> str:
        return self.name


def make_image(fmt: str = "PNG", size: tuple[int, int] = (256, 256)) -> bytes:
    """Build a deterministic RGB gradient image; PNG output is left uncompressed."""
    gradient = Image.linear_gradient("L").resize(size)
    img = Image.merge("RGB", (gradient, gradient.rotate(90), gradient.transpose(Image.Transpose.FLIP_LEFT_RIGHT)))
    buffer = io.BytesIO()
    if fmt == "PNG":
        img.save(buffer, format="PNG", compress_level=0)
    elif fmt == "GIF":
        img.convert("P").save(buffer, format="GIF")
    else:
        img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image("PNG")


@pytest.fixture
def png_file(png_bytes) -> SourceFile:
    return SourceFile(name="photo.png", content_type="image/png", data=png_bytes)


@pytest.fixture
def accounts() -> List[StorageAccount]:
    return [
        StorageAccount(id="ik-1", name="ImageKit Main", provider=Provider.IMAGEKIT, public_key="pk_1"),
        StorageAccount(id="cl-1", name="Cloudinary Main", provider=Provider.CLOUDINARY, url_endpoint="demo"),
        StorageAccount(id="ik-2", name="ImageKit Backup", provider=Provider.IMAGEKIT, public_key="pk_2"),
    ]


@pytest.fixture
def mock_backend() -> MagicMock:
    """Backend client double with async methods."""
    backend = MagicMock(spec=BackendClient)
    backend.create_file = AsyncMock(return_value={"id": "rec-1"})
    backend.create_activity_log = AsyncMock(return_value=None)
    backend.list_storage_accounts = AsyncMock(return_value=[])
    backend.list_categories = AsyncMock(return_value=[])
    backend.invoke_function = AsyncMock(return_value={})
    return backend


@pytest.fixture
def fake_provider(mock_backend) -> FakeProvider:
    return FakeProvider(mock_backend)


@pytest.fixture
def engine(mock_backend, fake_provider, accounts) -> UploadQueueEngine:
    """Engine with three accounts (two ImageKit, one Cloudinary) and ik-1 selected."""
    registry = ProviderRegistry(mock_backend)
    registry.register(Provider.IMAGEKIT, fake_provider)
    registry.register(Provider.CLOUDINARY, fake_provider)
    engine = UploadQueueEngine(mock_backend, providers=registry)
    engine.set_accounts(accounts)
    return engine


@pytest.fixture
def events(engine) -> List[QueueEvent]:
    """Every event the engine publishes, in order."""
    recorded: List[QueueEvent] = []
    engine.subscribe(recorded.append)
    return recorded
