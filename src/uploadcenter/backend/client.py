"""HTTP client for the Backend API (accounts, categories, signing functions, file records)."""

import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from uploadcenter.core.config import settings
from uploadcenter.core.exceptions import BackendError
from uploadcenter.models.queue import Category, StorageAccount

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    """Transport failures and 5xx answers are worth another attempt."""
    if not isinstance(exc, BackendError):
        return False
    return exc.status_code is None or exc.status_code >= 500


def _error_message(response: httpx.Response) -> str:
    """Pull the error text out of a Backend error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error") or body.get("message") or body.get("detail")
        if isinstance(error, dict):
            error = error.get("message")
        if error:
            return str(error)
    return f"HTTP {response.status_code}"


class BackendClient:
    """Async client for the Backend API.

    The Backend owns storage account secrets and signs upload requests;
    this client only ever sees public keys and one-shot signatures.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_wait: wait_base | None = None,
    ):
        """Initialize the Backend client.

        Args:
            base_url: Backend API root. Defaults to settings.BACKEND_API_URL.
            token: Bearer token. Defaults to settings.BACKEND_API_TOKEN.
            timeout: Request timeout in seconds. Defaults to settings.BACKEND_TIMEOUT.
            transport: Optional httpx transport (used by tests).
            retry_wait: Wait strategy between persistence retries.
        """
        self.base_url = (base_url or settings.BACKEND_API_URL).rstrip("/")
        self.token = token if token is not None else settings.BACKEND_API_TOKEN
        self.timeout = timeout if timeout is not None else settings.BACKEND_TIMEOUT
        self._transport = transport
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-create and cache the underlying httpx client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        client = self._get_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning(
                "Backend request failed",
                extra={"method": method, "path": path, "error": str(e)},
            )
            raise BackendError(f"Backend request failed: {e}") from e

        if response.is_error:
            message = _error_message(response)
            logger.warning(
                "Backend returned an error",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "error": message,
                },
            )
            raise BackendError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Backend returned invalid JSON for {method} {path}") from e

    @staticmethod
    def _unwrap_list(payload: Any) -> List[Dict[str, Any]]:
        """Accept both bare lists and ``{"data": [...]}`` envelopes."""
        if isinstance(payload, dict):
            payload = payload.get("data") or []
        return list(payload or [])

    async def list_storage_accounts(self) -> List[StorageAccount]:
        """Fetch configured storage accounts, keeping only active ones."""
        payload = await self._request("GET", "/storage_credentials")
        accounts = [StorageAccount.model_validate(row) for row in self._unwrap_list(payload)]
        active = [account for account in accounts if account.is_active]
        logger.info(
            "Storage accounts loaded",
            extra={"total": len(accounts), "active": len(active)},
        )
        return active

    async def list_categories(self) -> List[Category]:
        payload = await self._request("GET", "/categories")
        return [Category.model_validate(row) for row in self._unwrap_list(payload)]

    async def invoke_function(self, name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Call a Backend function such as ``imagekit-upload`` or ``cloudinary-sign``."""
        payload = await self._request("POST", f"/functions/{name}", json=body)
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            return payload["data"]
        return payload or {}

    async def create_file(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Persist an uploaded file's metadata.

        Transport failures and 5xx responses are retried up to
        settings.PERSIST_MAX_ATTEMPTS times with exponential backoff.

        Raises:
            BackendError: If the record could not be saved
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, settings.PERSIST_MAX_ATTEMPTS)),
            wait=self._retry_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                return await self._request("POST", "/files", json=record) or {}
        return {}

    async def create_activity_log(self, action_type: str, details: Dict[str, Any]) -> None:
        """Record an activity log entry. Failures are logged and ignored."""
        try:
            await self._request(
                "POST",
                "/activity_logs",
                json={"action_type": action_type, "details": details},
            )
        except BackendError as e:
            logger.warning(
                "Activity log write failed (non-critical)",
                extra={"action_type": action_type, "error": str(e)},
            )
