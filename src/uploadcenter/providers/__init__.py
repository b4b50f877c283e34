"""
Upload providers

Each provider implements the same two-step handshake (Backend signs,
client uploads directly) and returns a normalized UploadResult.
"""

from uploadcenter.providers.base import UploadProvider, UploadRequest, UploadResult
from uploadcenter.providers.cloudinary import CloudinaryProvider
from uploadcenter.providers.factory import ProviderRegistry
from uploadcenter.providers.imagekit import ImageKitProvider

__all__ = [
    "UploadProvider",
    "UploadRequest",
    "UploadResult",
    "ImageKitProvider",
    "CloudinaryProvider",
    "ProviderRegistry",
]
