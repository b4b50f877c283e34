"""ImageKit upload provider."""

import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from uploadcenter.core.config import settings
from uploadcenter.core.exceptions import (
    AuthDeniedError,
    ConfigInvalidError,
    UnknownUploadError,
    classify_provider_error,
)
from uploadcenter.models.queue import StorageAccount, VideoSettings
from uploadcenter.providers.base import UploadProvider, UploadRequest, UploadResult
from uploadcenter.queue.validation import is_video

logger = logging.getLogger(__name__)

SIGNING_FUNCTION = "imagekit-upload"

VIDEO_QUALITY_MAP = {"high": 80, "medium": 60, "low": 40}


class ImageKitAuthorization(BaseModel):
    """Signed upload authorization issued by the Backend."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    token: str
    signature: str
    expire: int
    public_key: Optional[str] = Field(None, alias="publicKey")


def build_video_transformation(url: str, video_settings: VideoSettings) -> str:
    """Append ImageKit ``tr=`` video transformations to a delivery URL.

    Examples:
        >>> build_video_transformation(
        ...     "https://ik.imagekit.io/demo/clip.mov",
        ...     VideoSettings(enabled=True, format="mp4", quality="medium"),
        ... )
        'https://ik.imagekit.io/demo/clip.mov?tr=f-mp4,q-60'
    """
    if not video_settings.enabled:
        return url

    transformations = []
    if video_settings.format != "original":
        transformations.append(f"f-{video_settings.format}")
    if video_settings.quality in VIDEO_QUALITY_MAP:
        transformations.append(f"q-{VIDEO_QUALITY_MAP[video_settings.quality]}")

    if not transformations:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}tr={','.join(transformations)}"


class ImageKitProvider(UploadProvider):
    """Uploads through the ImageKit client-side upload API."""

    def __init__(self, *args, upload_url: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.upload_url = upload_url or settings.IMAGEKIT_UPLOAD_URL

    async def authorize(self, file_name: str, account: StorageAccount) -> ImageKitAuthorization:
        payload = await self._invoke_signing_function(
            SIGNING_FUNCTION,
            {"fileName": file_name, "storageAccountId": account.id},
        )
        try:
            return ImageKitAuthorization.model_validate(payload)
        except ValidationError as e:
            raise AuthDeniedError("Backend returned an incomplete ImageKit authorization") from e

    async def upload(
        self,
        request: UploadRequest,
        authorization: ImageKitAuthorization,
        account: StorageAccount,
    ) -> UploadResult:
        public_key = authorization.public_key or account.public_key
        if not public_key:
            raise ConfigInvalidError(
                f"ImageKit account {account.name} has no public key. Update it in Storage Accounts."
            )

        form = {
            "fileName": request.file_name,
            "token": authorization.token,
            "signature": authorization.signature,
            "expire": str(authorization.expire),
            "publicKey": public_key,
            "useUniqueFileName": "true",
            "folder": settings.imagekit_folder,
        }

        logger.info(
            "Uploading to ImageKit",
            extra={"file_name": request.file_name, "account_id": account.id, "is_url": request.is_url},
        )

        try:
            async with self._http_client() as client:
                response = await client.post(
                    self.upload_url,
                    data=form,
                    files={"file": self._file_field(request)},
                )
        except httpx.HTTPError as e:
            raise UnknownUploadError(f"ImageKit upload failed: {e}") from e

        body = self._response_json(response)
        if response.is_error:
            message = str(body.get("message") or f"ImageKit upload failed (HTTP {response.status_code})")
            raise classify_provider_error(message)

        url = body.get("url")
        if not url:
            raise UnknownUploadError("ImageKit response did not include a URL")

        if is_video(request.content_type):
            url = build_video_transformation(url, request.video_settings)

        return UploadResult(
            url=url,
            external_id=str(body.get("fileId") or ""),
            size=body.get("size"),
            # ImageKit reports "image"/"non-image" here, not a MIME type
            file_type=None,
        )

    def get_provider_name(self) -> str:
        return "imagekit"
