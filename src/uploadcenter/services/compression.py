"""Image re-encoding for queued uploads."""

import asyncio
import io
import logging

from PIL import Image, UnidentifiedImageError

from uploadcenter.core.exceptions import CompressionError
from uploadcenter.models.queue import CompressionSettings, SourceFile
from uploadcenter.queue.naming import split_extension
from uploadcenter.queue.validation import is_compressible_image

logger = logging.getLogger(__name__)

# Pillow format name -> (MIME type, file extension)
PIL_FORMATS = {
    "JPEG": ("image/jpeg", "jpg"),
    "PNG": ("image/png", "png"),
    "WEBP": ("image/webp", "webp"),
}

TARGET_FORMATS = {
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
}


def should_compress(file: SourceFile, compression: CompressionSettings) -> bool:
    """Compression applies to enabled settings on raster images other than SVG and GIF."""
    return compression.enabled and is_compressible_image(file.content_type)


def _target_format(source_format: str | None, compression: CompressionSettings) -> str:
    if compression.format != "original":
        return TARGET_FORMATS[compression.format]
    if source_format not in PIL_FORMATS:
        raise CompressionError(f"Cannot re-encode {source_format or 'unknown'} images in place")
    return source_format


def compress_image(file: SourceFile, compression: CompressionSettings) -> SourceFile:
    """Re-encode an image at the requested format and quality.

    Files the settings do not apply to are returned unchanged.

    Args:
        file: Source image
        compression: Target format and quality (0-100)

    Returns:
        A new SourceFile with the re-encoded bytes, renamed to the new extension

    Raises:
        CompressionError: If the image cannot be decoded or encoded
    """
    if not should_compress(file, compression):
        return file

    try:
        with Image.open(io.BytesIO(file.data)) as img:
            target = _target_format(img.format, compression)
            img.load()

            if target == "JPEG" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            elif target in ("PNG", "WEBP") and img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")

            save_kwargs: dict = {"optimize": True}
            if target in ("JPEG", "WEBP"):
                save_kwargs["quality"] = compression.quality
            if target == "WEBP":
                save_kwargs.pop("optimize")
                save_kwargs["method"] = 4

            buffer = io.BytesIO()
            img.save(buffer, format=target, **save_kwargs)
    except CompressionError:
        raise
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise CompressionError(f"Failed to re-encode {file.name}: {e}") from e

    mime_type, _ = PIL_FORMATS[target]
    if compression.format == "original":
        # Keep the user's extension spelling (jpg vs jpeg)
        new_name = file.name
    else:
        stem, _ = split_extension(file.name)
        new_name = f"{stem}.{compression.format}"

    data = buffer.getvalue()
    logger.debug(
        "Image re-encoded",
        extra={
            "file_name": file.name,
            "target_format": target,
            "quality": compression.quality,
            "original_size": file.size,
            "compressed_size": len(data),
        },
    )
    return SourceFile(name=new_name, content_type=mime_type, data=data)


async def compress_image_async(file: SourceFile, compression: CompressionSettings) -> SourceFile:
    """Run compress_image in a worker thread so the event loop stays free."""
    return await asyncio.to_thread(compress_image, file, compression)
