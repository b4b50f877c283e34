"""
File validation applied before anything enters the upload queue.

Files are checked against:
- an explicit MIME allow-list (common image, video, document and audio types)
- a size window: more than zero bytes, at most MAX_UPLOAD_MB
- a maximum filename length

Rejected files never produce a queue item.
"""

from typing import Dict, List
from urllib.parse import urlparse

from uploadcenter.core.config import settings
from uploadcenter.core.exceptions import FileValidationError
from uploadcenter.models.queue import SourceFile

ALLOWED_MIME_TYPES: List[str] = [
    # Images
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    # Documents
    "application/pdf",
    "application/msword",  # .doc
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",  # .docx
    "application/vnd.ms-excel",  # .xls
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",  # .xlsx
    "text/plain",
    "text/csv",
    # Video
    "video/mp4",
    "video/webm",
    "video/quicktime",  # .mov
    "video/x-msvideo",  # .avi
    "video/x-matroska",  # .mkv
    # Audio
    "audio/mpeg",  # .mp3
    "audio/wav",
]

# Extension lookups for clients that send no usable content type
EXTENSION_MIME_MAP: Dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "txt": "text/plain",
    "csv": "text/csv",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "mkv": "video/x-matroska",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
}

# Raster types the compressor will never touch
NON_COMPRESSIBLE_IMAGE_TYPES = frozenset({"image/svg+xml", "image/gif"})

GENERIC_MIME_TYPES = frozenset({"", "application/octet-stream"})


def normalize_mime_type(mime_type: str | None) -> str:
    """Lowercase a MIME type and strip parameters such as charset."""
    return (mime_type or "").lower().split(";")[0].strip()


def guess_mime_type(filename: str) -> str | None:
    """
    Infer a MIME type from a filename extension.

    Examples:
        >>> guess_mime_type("photo.JPG")
        'image/jpeg'
        >>> guess_mime_type("archive.zip") is None
        True
    """
    if "." not in filename:
        return None
    extension = filename.rsplit(".", 1)[-1].lower()
    return EXTENSION_MIME_MAP.get(extension)


def resolve_content_type(filename: str, content_type: str | None) -> str:
    """Use the declared content type unless it is missing or generic."""
    normalized = normalize_mime_type(content_type)
    if normalized in GENERIC_MIME_TYPES:
        return guess_mime_type(filename) or "application/octet-stream"
    return normalized


def get_allowed_mime_types() -> List[str]:
    """Allow-list in effect: the configured override, or the built-in list."""
    return settings.allowed_mime_types or ALLOWED_MIME_TYPES


def is_compressible_image(mime_type: str | None) -> bool:
    """True for raster image types the compressor can re-encode."""
    normalized = normalize_mime_type(mime_type)
    return normalized.startswith("image/") and normalized not in NON_COMPRESSIBLE_IMAGE_TYPES


def is_video(mime_type: str | None) -> bool:
    return normalize_mime_type(mime_type).startswith("video/")


def validate_file(file: SourceFile) -> None:
    """
    Check a selected file before it is queued.

    Args:
        file: The selected file, with its content type already resolved

    Raises:
        FileValidationError: If the type, size or name is not acceptable
    """
    content_type = normalize_mime_type(file.content_type)
    if content_type not in get_allowed_mime_types():
        raise FileValidationError(f'File type "{file.content_type}" is not allowed')

    if file.size == 0:
        raise FileValidationError(f"File {file.name} is empty")

    if file.size > settings.max_upload_bytes:
        raise FileValidationError(
            f"File {file.name} is too large (max {settings.MAX_UPLOAD_MB}MB)"
        )

    if len(file.name) > settings.MAX_FILENAME_LENGTH:
        raise FileValidationError(
            f"File name is longer than {settings.MAX_FILENAME_LENGTH} characters"
        )


def validate_source_url(url: str) -> str:
    """
    Check a remote source locator before it is queued.

    Returns:
        The stripped URL

    Raises:
        FileValidationError: If the URL is not an absolute http(s) URL
    """
    candidate = (url or "").strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise FileValidationError(f"Invalid source URL: {url!r}")
    return candidate
