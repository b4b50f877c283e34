"""Target filename helpers."""

import secrets
import string
from urllib.parse import unquote, urlparse

SHORT_NAME_ALPHABET = string.ascii_lowercase + string.digits
SHORT_NAME_LENGTH = 5
URL_FALLBACK_NAME = "upload_from_url"


def random_short_name(length: int = SHORT_NAME_LENGTH) -> str:
    """Generate a random lowercase alphanumeric name, e.g. ``k3x9a``."""
    return "".join(secrets.choice(SHORT_NAME_ALPHABET) for _ in range(length))


def split_extension(filename: str) -> tuple[str, str | None]:
    """Split ``photo.final.png`` into ``("photo.final", "png")``.

    Dotfiles and names ending in a dot have no extension.
    """
    stem, dot, extension = filename.rpartition(".")
    if not dot or not stem or not extension:
        return filename, None
    return stem, extension


def name_from_url(url: str) -> str:
    """Last path segment of a URL, without query string."""
    path = urlparse(url).path
    last_segment = unquote(path.rsplit("/", 1)[-1]) if path else ""
    return last_segment or URL_FALLBACK_NAME


def resolve_file_name(original_name: str, custom_name: str | None) -> str:
    """Resolve the target filename for an upload.

    A custom name wins over the original; the original's extension is
    appended when the custom name does not already carry one.

    Args:
        original_name: Source file name (or the name derived from a URL)
        custom_name: User-supplied name, None when not set

    Returns:
        Filename to send to the provider and to persist
    """
    if custom_name is None or not custom_name.strip():
        return original_name

    custom_name = custom_name.strip()
    _, original_ext = split_extension(original_name)
    if not original_ext:
        return custom_name

    _, custom_ext = split_extension(custom_name)
    if custom_ext:
        return custom_name
    return f"{custom_name}.{original_ext}"


def public_id_for(file_name: str) -> str:
    """Cloudinary public id: the filename up to its first dot."""
    return file_name.split(".")[0] or file_name
