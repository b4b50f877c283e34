"""Abstract upload provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from uploadcenter.backend.client import BackendClient
from uploadcenter.core.config import settings
from uploadcenter.core.exceptions import (
    AuthDeniedError,
    BackendError,
    QuotaExceededError,
    UploadError,
    is_quota_message,
)
from uploadcenter.models.queue import SourceFile, StorageAccount, VideoSettings


@dataclass
class UploadRequest:
    """Everything a provider needs to place one file."""

    file_name: str
    source: SourceFile | str  # bytes to send, or a remote URL the provider fetches
    content_type: str
    video_settings: VideoSettings

    @property
    def is_url(self) -> bool:
        return isinstance(self.source, str)


@dataclass
class UploadResult:
    """Provider response normalized across providers."""

    url: str
    external_id: str
    size: Optional[int] = None
    file_type: Optional[str] = None


class UploadProvider(ABC):
    """Abstract base class for upload providers.

    An upload is a two-step handshake: ``authorize`` asks the Backend to
    sign the request (the Backend holds the account secret), ``upload``
    sends the file straight to the provider with that signature.
    """

    def __init__(
        self,
        backend: BackendClient,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        self.backend = backend
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT

    @abstractmethod
    async def authorize(self, file_name: str, account: StorageAccount) -> Any:
        """Obtain a signed upload authorization from the Backend.

        Args:
            file_name: Target file name
            account: Storage account the file goes to

        Returns:
            Provider-specific authorization payload

        Raises:
            AuthDeniedError: If the Backend refuses to sign
            ConfigInvalidError: If the account configuration is unusable
        """
        pass

    @abstractmethod
    async def upload(
        self, request: UploadRequest, authorization: Any, account: StorageAccount
    ) -> UploadResult:
        """Send the file to the provider.

        Returns:
            Normalized upload result

        Raises:
            UploadError: Structured failure (quota, configuration, unknown)
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return provider identifier."""
        pass

    async def send(self, request: UploadRequest, account: StorageAccount) -> UploadResult:
        """Run the full authorize -> upload handshake."""
        authorization = await self.authorize(request.file_name, account)
        return await self.upload(request, authorization, account)

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self._timeout), transport=self._transport)

    async def _invoke_signing_function(self, name: str, body: dict) -> dict:
        """Call a Backend signing function, mapping failures to upload errors."""
        try:
            return await self.backend.invoke_function(name, body)
        except BackendError as e:
            raise self._authorization_error(e) from e

    @staticmethod
    def _authorization_error(error: BackendError) -> UploadError:
        message = str(error) or "Failed to obtain upload authorization"
        if is_quota_message(message):
            return QuotaExceededError(message)
        return AuthDeniedError(message)

    @staticmethod
    def _file_field(request: UploadRequest) -> tuple:
        """Multipart ``file`` part: binary content, or a bare form value for URLs."""
        if isinstance(request.source, str):
            return (None, request.source)
        return (request.file_name, request.source.data, request.content_type)

    @staticmethod
    def _response_json(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
