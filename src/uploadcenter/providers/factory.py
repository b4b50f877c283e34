"""Upload provider selection."""

import httpx

from uploadcenter.backend.client import BackendClient
from uploadcenter.models.queue import Provider, StorageAccount
from uploadcenter.providers.base import UploadProvider
from uploadcenter.providers.cloudinary import CloudinaryProvider
from uploadcenter.providers.imagekit import ImageKitProvider

PROVIDER_CLASSES: dict[Provider, type[UploadProvider]] = {
    Provider.IMAGEKIT: ImageKitProvider,
    Provider.CLOUDINARY: CloudinaryProvider,
}


class ProviderRegistry:
    """Builds one provider instance per provider tag and reuses it."""

    def __init__(
        self,
        backend: BackendClient,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        self.backend = backend
        self._transport = transport
        self._timeout = timeout
        self._providers: dict[Provider, UploadProvider] = {}

    def register(self, provider: Provider, instance: UploadProvider) -> None:
        """Install a provider instance explicitly (custom endpoints, test doubles)."""
        self._providers[provider] = instance

    def for_account(self, account: StorageAccount) -> UploadProvider:
        """Return the upload strategy matching the account's provider tag."""
        return self.get(account.provider)

    def get(self, provider: Provider | str) -> UploadProvider:
        try:
            key = Provider(provider)
        except ValueError:
            raise ValueError(f"Unknown upload provider: {provider}") from None

        if key not in self._providers:
            provider_cls = PROVIDER_CLASSES[key]
            self._providers[key] = provider_cls(
                self.backend, transport=self._transport, timeout=self._timeout
            )
        return self._providers[key]
