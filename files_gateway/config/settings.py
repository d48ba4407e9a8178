"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables once per process.
The variable names match the deployment environment of the gateway
(PORT, AWS_REGION, S3_BUCKET, S3_PREFIX, FILE_MAX_MB) so the service can be
dropped into an existing container definition without renaming anything.

Settings are frozen: handlers receive the same immutable instance for the
lifetime of the process.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BYTES_PER_MB = 1024 * 1024
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    """
    Gateway settings loaded from environment variables.

    An empty bucket name is allowed at startup. Requests that need the
    bucket fail with a configuration error instead, which keeps /healthz
    usable while the deployment is being wired up.
    """

    # API Configuration
    api_title: str = "Files Gateway"
    api_version: str = "0.1.0"
    port: int = Field(
        default=5004,
        description="Port the HTTP server listens on"
    )

    # S3 Storage Configuration
    aws_region: str = Field(
        default="us-west-1",
        description="Region of the storage bucket"
    )
    s3_bucket: str = Field(
        default="",
        description="Bucket name. Empty means storage is not configured."
    )
    s3_prefix: str = Field(
        default="",
        description="Key prefix scoping every listed and generated key. Trailing slashes are stripped."
    )
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom S3-compatible endpoint (MinIO, R2). Uses AWS when unset."
    )
    s3_mock_mode: bool = Field(
        default=False,
        description="Use in-memory storage instead of S3. Enables local dev without a bucket."
    )

    # Upload Behavior
    file_max_mb: float = Field(
        default=10,
        description="Maximum upload size in MiB. Values below 1 are raised to 1."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @field_validator("s3_prefix")
    @classmethod
    def strip_trailing_slashes(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        """Uppercase the level; both logging and uvicorn must accept it."""
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def bucket_configured(self) -> bool:
        return bool(self.s3_bucket)

    @property
    def max_upload_bytes(self) -> int:
        """Upload cap in bytes, never below 1 MiB."""
        return int(max(1.0, self.file_max_mb) * BYTES_PER_MB)

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_required_fields(self) -> list[str]:
        """
        Report configuration that requests will need.

        Returns the environment variable names that are missing. The bucket
        is required even in mock mode: it is what the storage endpoints check.
        """
        missing = []

        if not self.s3_bucket:
            missing.append("S3_BUCKET")

        if not self.aws_region:
            missing.append("AWS_REGION")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are read from the environment once per process.
    For tests, call get_settings.cache_clear() to reset.
    """
    return Settings()
