"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Database Configuration
    database_url: str = Field(alias="DATABASE_URL")
    db_pool_size: int = Field(default=20, alias="DB_POOL_SIZE")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    # HeyGen video generation provider
    heygen_api_key: str = Field(default="", alias="HEYGEN_API_KEY")
    heygen_api_url: str = Field(default="https://api.heygen.com", alias="HEYGEN_API_URL")
    heygen_upload_url: str = Field(default="https://upload.heygen.com", alias="HEYGEN_UPLOAD_URL")
    heygen_timeout_seconds: float = Field(default=30.0, alias="HEYGEN_TIMEOUT_SECONDS")

    # Durable storage (Supabase Storage)
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_service_key: str = Field(default="", alias="SUPABASE_SERVICE_KEY")
    supabase_bucket: str = Field(default="videos", alias="SUPABASE_BUCKET")
    storage_timeout_seconds: float = Field(default=180.0, alias="STORAGE_TIMEOUT_SECONDS")

    # Asset relocation
    relocation_min_bytes: int = Field(default=10 * 1024, alias="RELOCATION_MIN_BYTES")
    relocation_max_bytes: int = Field(default=500 * 1024 * 1024, alias="RELOCATION_MAX_BYTES")
    relocation_download_attempts: int = Field(default=3, alias="RELOCATION_DOWNLOAD_ATTEMPTS")
    relocation_backoff_seconds: float = Field(default=1.0, alias="RELOCATION_BACKOFF_SECONDS")
    relocation_max_attempts: int = Field(default=5, alias="RELOCATION_MAX_ATTEMPTS")
    relocation_staging_dir: str | None = Field(default=None, alias="RELOCATION_STAGING_DIR")

    # Poll sweep
    sync_interval_seconds: int = Field(default=60, alias="SYNC_INTERVAL_SECONDS")
    sync_lookback_hours: int = Field(default=24, alias="SYNC_LOOKBACK_HOURS")
    sync_batch_size: int = Field(default=50, alias="SYNC_BATCH_SIZE")
    sync_concurrency: int = Field(default=5, alias="SYNC_CONCURRENCY")

    # Video jobs
    video_max_retries: int = Field(default=3, alias="VIDEO_MAX_RETRIES")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Fails fast with clear error messages if provider or storage credentials are missing.
        Validation is skipped in test environments.
        """
        if self.app_env in ("test", "testing"):
            return self

        missing = []

        if not self.heygen_api_key:
            missing.append("HEYGEN_API_KEY: Get your API key from https://app.heygen.com/settings")

        if not self.supabase_url:
            missing.append("SUPABASE_URL: Project URL of the Supabase storage instance")

        if not self.supabase_service_key:
            missing.append("SUPABASE_SERVICE_KEY: Service role key with storage write access")

        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe application cannot start without these variables."
            error_msg += "\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        structlog.configure(
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        structlog.configure(
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
