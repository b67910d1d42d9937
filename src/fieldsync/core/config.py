"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Local durable storage (embedded SQLite key/value table + media directory)
    database_url: str = Field(default="sqlite+aiosqlite:///./fieldsync.db", alias="DATABASE_URL")
    media_dir: str = Field(default="./media", alias="MEDIA_DIR")

    # Backend upload endpoint
    api_base_url: str = Field(default="http://localhost:4200", alias="API_BASE_URL")
    upload_path: str = Field(default="/api/employee-uploads", alias="UPLOAD_PATH")
    upload_timeout_seconds: float = Field(default=60.0, gt=0, alias="UPLOAD_TIMEOUT_SECONDS")
    wait_for_connectivity_seconds: float = Field(
        default=30.0, ge=0, alias="WAIT_FOR_CONNECTIVITY_SECONDS"
    )

    # Acting user (the app stored this under "userId", "0" when logged out)
    uploader_id: str = Field(default="0", alias="UPLOADER_ID")

    # Image normalisation
    jpeg_quality: int = Field(default=80, ge=1, le=100, alias="JPEG_QUALITY")

    # Connectivity probe
    connectivity_probe_url: str = Field(default="", alias="CONNECTIVITY_PROBE_URL")
    connectivity_probe_interval_seconds: float = Field(
        default=10.0, gt=0, alias="CONNECTIVITY_PROBE_INTERVAL_SECONDS"
    )

    # Sync worker
    sync_interval_seconds: float = Field(default=60.0, gt=0, alias="SYNC_INTERVAL_SECONDS")
    cleanup_interval_seconds: float = Field(default=3600.0, gt=0, alias="CLEANUP_INTERVAL_SECONDS")
    sync_concurrency: int = Field(default=4, ge=1, alias="SYNC_CONCURRENCY")

    # Retry policy (0 disables the cap / the backoff)
    retry_max_attempts: int = Field(default=0, ge=0, alias="RETRY_MAX_ATTEMPTS")
    retry_backoff_seconds: float = Field(default=0.0, ge=0, alias="RETRY_BACKOFF_SECONDS")
    retry_backoff_max_seconds: float = Field(default=900.0, gt=0, alias="RETRY_BACKOFF_MAX_SECONDS")

    # Local API
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def upload_url(self) -> str:
        """Full URL of the employee uploads endpoint."""
        return self.api_base_url.rstrip("/") + "/" + self.upload_path.lstrip("/")

    @property
    def probe_url(self) -> str:
        """URL probed by the connectivity monitor (defaults to the API base URL)."""
        return self.connectivity_probe_url or self.api_base_url

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Fails fast with clear error messages if configuration is incomplete.
        Validation is skipped in test environments to avoid breaking tests.
        """
        if self.app_env in ("test", "testing"):
            return self

        missing = []

        if not self.api_base_url.startswith(("http://", "https://")):
            missing.append(
                f"API_BASE_URL: Must be an http(s) URL of the backend (got {self.api_base_url!r})"
            )

        if not self.uploader_id:
            missing.append("UPLOADER_ID: Set the employee id uploads are attributed to")

        if missing:
            error_msg = "CRITICAL: Invalid or missing environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.app_env == "production":
        renderer = structlog.processors.JSONRenderer()
        processors = [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ]
    else:
        processors = [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
