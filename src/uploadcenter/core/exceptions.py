"""Custom exceptions for the Upload Center engine."""

QUOTA_KEYWORDS = ("limit", "quota", "exceeded", "full", "capacity", "credit")


class UploadCenterException(Exception):
    """Base exception for the Upload Center engine."""
    pass


class FileValidationError(UploadCenterException):
    """Exception raised when a file is rejected before it enters the queue."""
    pass


class CompressionError(UploadCenterException):
    """Exception raised when an image cannot be re-encoded."""
    pass


class QueueItemNotFoundError(UploadCenterException):
    """Exception raised when a queue item id is unknown."""
    pass


class QueueStateError(UploadCenterException):
    """Exception raised when an operation is not allowed in the item's current state."""
    pass


class AccountUnavailableError(UploadCenterException):
    """Exception raised when a storage account cannot be selected."""
    pass


class CategoryNotFoundError(UploadCenterException):
    """Exception raised when a category id is unknown."""
    pass


class BackendError(UploadCenterException):
    """Exception raised when a Backend API call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UploadError(UploadCenterException):
    """Base exception for failures of a provider upload flow."""
    pass


class QuotaExceededError(UploadError):
    """The storage account ran out of quota, credits or capacity."""
    pass


class ConfigInvalidError(UploadError):
    """The storage account is misconfigured and needs user action."""
    pass


class AuthDeniedError(UploadError):
    """The backend refused to authorize the upload."""
    pass


class UnknownUploadError(UploadError):
    """Any other upload failure."""
    pass


def is_quota_message(message: str) -> bool:
    """Return True when a provider message reads like an exhausted plan."""
    lowered = message.lower()
    return any(keyword in lowered for keyword in QUOTA_KEYWORDS)


def classify_provider_error(message: str) -> UploadError:
    """Map a raw provider error message to a structured upload error.

    Args:
        message: Error text reported by the provider

    Returns:
        QuotaExceededError when the text mentions a limit, UnknownUploadError otherwise
    """
    if is_quota_message(message):
        return QuotaExceededError(message)
    return UnknownUploadError(message)
