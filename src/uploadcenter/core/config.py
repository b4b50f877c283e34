"""Configuration management for the Upload Center engine."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    ENV: str = "local"
    SERVICE_NAME: str = "upload-center"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Backend API (accounts, categories, signing functions, file records)
    BACKEND_API_URL: str = "http://localhost:3000/api"
    BACKEND_API_TOKEN: str = ""
    BACKEND_TIMEOUT: int = 30  # seconds

    # Provider upload endpoints
    IMAGEKIT_UPLOAD_URL: str = "https://upload.imagekit.io/api/v1/files/upload"
    CLOUDINARY_API_BASE: str = "https://api.cloudinary.com/v1_1"
    UPLOAD_FOLDER: str = "uploads"
    PROVIDER_TIMEOUT: float | None = None  # None = wait until the provider answers

    # Upload Constraints
    MAX_UPLOAD_MB: int = 500
    MAX_FILENAME_LENGTH: int = 255
    ALLOWED_UPLOAD_MIME_TYPES: str = ""  # Comma-separated, empty = built-in allow-list

    # Queue behaviour
    MAX_FAILOVER_ATTEMPTS: int = 5
    PERSIST_MAX_ATTEMPTS: int = 3
    DEFAULT_COMPRESSION_QUALITY: int = 80

    @property
    def allowed_mime_types(self) -> list[str] | None:
        """Parse ALLOWED_UPLOAD_MIME_TYPES into a list."""
        if not self.ALLOWED_UPLOAD_MIME_TYPES:
            return None
        return [mt.strip() for mt in self.ALLOWED_UPLOAD_MIME_TYPES.split(",") if mt.strip()]

    @property
    def max_upload_bytes(self) -> int:
        """Convert MAX_UPLOAD_MB to bytes."""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    @property
    def imagekit_folder(self) -> str:
        """ImageKit expects a leading slash on folder paths."""
        return "/" + self.UPLOAD_FOLDER.strip("/")


# Singleton settings instance
settings = Settings()
