"""Tests for image compression."""

import io

import pytest
from PIL import Image

from conftest import make_image
from uploadcenter.core.exceptions import CompressionError
from uploadcenter.models.queue import CompressionSettings, SourceFile
from uploadcenter.services.compression import compress_image, compress_image_async, should_compress


def test_png_to_webp(png_file):
    """Test conversion renames the file and shrinks it."""
    result = compress_image(png_file, CompressionSettings(enabled=True, format="webp", quality=80))

    assert result.name == "photo.webp"
    assert result.content_type == "image/webp"
    assert result.size < png_file.size
    with Image.open(io.BytesIO(result.data)) as img:
        assert img.format == "WEBP"
        assert img.size == (256, 256)


def test_png_to_jpeg_drops_alpha():
    """Test that RGBA input is flattened for JPEG output."""
    buffer = io.BytesIO()
    Image.new("RGBA", (40, 40), (255, 0, 0, 128)).save(buffer, format="PNG")
    source = SourceFile(name="icon.png", content_type="image/png", data=buffer.getvalue())

    result = compress_image(source, CompressionSettings(enabled=True, format="jpeg", quality=60))

    assert result.name == "icon.jpeg"
    assert result.content_type == "image/jpeg"
    with Image.open(io.BytesIO(result.data)) as img:
        assert img.mode == "RGB"


def test_original_format_keeps_name():
    """Test re-encoding in place keeps the user's extension."""
    source = SourceFile(name="shot.JPG", content_type="image/jpeg", data=make_image("JPEG"))

    result = compress_image(source, CompressionSettings(enabled=True, format="original", quality=30))

    assert result.name == "shot.JPG"
    assert result.content_type == "image/jpeg"


def test_lower_quality_is_smaller():
    source = SourceFile(name="shot.jpg", content_type="image/jpeg", data=make_image("JPEG", (512, 512)))

    high = compress_image(source, CompressionSettings(enabled=True, format="jpeg", quality=95))
    low = compress_image(source, CompressionSettings(enabled=True, format="jpeg", quality=10))

    assert low.size < high.size


@pytest.mark.parametrize(
    "source,compression",
    [
        (SourceFile(name="photo.png", content_type="image/png", data=b"x"), CompressionSettings()),
        (SourceFile(name="anim.gif", content_type="image/gif", data=b"x"), CompressionSettings(enabled=True)),
        (SourceFile(name="logo.svg", content_type="image/svg+xml", data=b"x"), CompressionSettings(enabled=True)),
        (SourceFile(name="doc.pdf", content_type="application/pdf", data=b"x"), CompressionSettings(enabled=True)),
    ],
)
def test_non_applicable_files_unchanged(source, compression):
    """Test that disabled settings and non-raster files are passed through."""
    assert not should_compress(source, compression)
    assert compress_image(source, compression) is source


def test_undecodable_image_raises():
    source = SourceFile(name="broken.png", content_type="image/png", data=b"not an image")

    with pytest.raises(CompressionError, match="broken.png"):
        compress_image(source, CompressionSettings(enabled=True, format="webp"))


def test_original_format_unsupported_source():
    """Test that in-place re-encode refuses formats it cannot write back."""
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8)).save(buffer, format="BMP")
    source = SourceFile(name="old.bmp", content_type="image/bmp", data=buffer.getvalue())

    with pytest.raises(CompressionError, match="BMP"):
        compress_image(source, CompressionSettings(enabled=True, format="original"))


@pytest.mark.asyncio
async def test_compress_async(png_file):
    result = await compress_image_async(png_file, CompressionSettings(enabled=True, format="png"))

    assert result.content_type == "image/png"
    assert result.name == "photo.png"
