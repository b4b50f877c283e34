"""Cloudinary upload provider."""

import logging
import re

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from uploadcenter.core.config import settings
from uploadcenter.core.exceptions import (
    AuthDeniedError,
    ConfigInvalidError,
    UnknownUploadError,
    classify_provider_error,
)
from uploadcenter.models.queue import StorageAccount
from uploadcenter.providers.base import UploadProvider, UploadRequest, UploadResult
from uploadcenter.queue.naming import public_id_for

logger = logging.getLogger(__name__)

SIGNING_FUNCTION = "cloudinary-sign"

CLOUD_NAME_PATTERN = re.compile(r"^[a-z0-9_-]+$")

INVALID_CLOUD_NAME_MESSAGE = (
    "Cloudinary cloud name is invalid. Open Storage Accounts and set the cloud name "
    "exactly as shown in the Cloudinary dashboard."
)

CLOUD_NAME_ERROR_MARKERS = ("invalid cloud_name", "cloud name")


def _is_cloud_name_error(message: str) -> bool:
    """True when Cloudinary rejects the account's cloud name, in any wording."""
    lowered = message.lower()
    return any(marker in lowered for marker in CLOUD_NAME_ERROR_MARKERS)


class CloudinarySignature(BaseModel):
    """Signed timestamp issued by the Backend for one upload."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    signature: str
    timestamp: int
    cloud_name: str = Field(alias="cloudName")
    api_key: str = Field(alias="apiKey")
    public_id: str = ""


class CloudinaryProvider(UploadProvider):
    """Uploads through the Cloudinary signed upload API."""

    def __init__(self, *args, api_base: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_base = (api_base or settings.CLOUDINARY_API_BASE).rstrip("/")

    async def authorize(self, file_name: str, account: StorageAccount) -> CloudinarySignature:
        public_id = public_id_for(file_name)
        payload = await self._invoke_signing_function(
            SIGNING_FUNCTION,
            {
                "storageAccountId": account.id,
                "params": {"public_id": public_id, "folder": settings.UPLOAD_FOLDER},
            },
        )
        try:
            signature = CloudinarySignature.model_validate(payload)
        except ValidationError as e:
            raise AuthDeniedError("Backend returned an incomplete Cloudinary signature") from e

        if not CLOUD_NAME_PATTERN.match(signature.cloud_name):
            raise ConfigInvalidError(INVALID_CLOUD_NAME_MESSAGE)

        return signature.model_copy(update={"public_id": public_id})

    async def upload(
        self,
        request: UploadRequest,
        authorization: CloudinarySignature,
        account: StorageAccount,
    ) -> UploadResult:
        # "auto" lets Cloudinary detect image/video/raw
        endpoint = f"{self.api_base}/{authorization.cloud_name}/auto/upload"
        form = {
            "api_key": authorization.api_key,
            "timestamp": str(authorization.timestamp),
            "signature": authorization.signature,
            "folder": settings.UPLOAD_FOLDER,
            "public_id": authorization.public_id or public_id_for(request.file_name),
        }

        logger.info(
            "Uploading to Cloudinary",
            extra={"file_name": request.file_name, "account_id": account.id, "is_url": request.is_url},
        )

        try:
            async with self._http_client() as client:
                response = await client.post(
                    endpoint,
                    data=form,
                    files={"file": self._file_field(request)},
                )
        except httpx.HTTPError as e:
            raise UnknownUploadError(f"Cloudinary upload failed: {e}") from e

        body = self._response_json(response)
        if response.is_error:
            error = body.get("error")
            message = error.get("message") if isinstance(error, dict) else None
            message = str(message or "Cloudinary upload failed")
            if _is_cloud_name_error(message):
                raise ConfigInvalidError(INVALID_CLOUD_NAME_MESSAGE)
            raise classify_provider_error(message)

        secure_url = body.get("secure_url")
        if not secure_url:
            raise UnknownUploadError("Cloudinary response did not include a secure_url")

        resource_type = body.get("resource_type")
        file_format = body.get("format")
        file_type = f"{resource_type}/{file_format}" if resource_type and file_format else None

        return UploadResult(
            url=secure_url,
            external_id=str(body.get("public_id") or ""),
            size=body.get("bytes"),
            file_type=file_type,
        )

    def get_provider_name(self) -> str:
        return "cloudinary"
