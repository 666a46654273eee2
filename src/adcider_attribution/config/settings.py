"""
Module: settings.py
Description: SDK configuration using pydantic-settings.

Configures the collector endpoint, durable storage location and retry
policy from ADCIDER_* environment variables with validation and defaults.
Supports .env files for local development.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """SDK settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ADCIDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # SDK settings
    sdk_version: str = Field(default="1.0.0", description="SDK version")
    log_level: str = Field(default="WARNING", description="Logging level when debug logging is off")

    # Delivery settings
    backend_url: str = Field(
        default="https://app.adcider.com/app-api/attribution",
        description="Collector endpoint receiving attribution batches"
    )
    user_agent: str = Field(
        default="AdCiderAttribution/1.0",
        description="User-Agent header sent with every batch"
    )
    request_timeout: float = Field(
        default=30.0,
        ge=1,
        le=120,
        description="HTTP timeout in seconds for delivery attempts"
    )
    bundle_id: Optional[str] = Field(
        default=None,
        description="Application bundle identifier reported with each batch"
    )

    # Storage settings
    storage_dir: Path = Field(
        default_factory=lambda: Path.home() / ".adcider",
        description="Directory holding the retry queue, sent ids and installation id"
    )
    retry_queue_file_name: str = Field(default="adcider_retry_queue.json")
    sent_ids_file_name: str = Field(default="adcider_sent_transaction_ids.json")
    keychain_service: str = Field(
        default="com.adcider.attribution",
        description="Namespace of the persisted installation identifier"
    )

    # Retry settings
    max_retry_attempts: int = Field(default=3, ge=1, le=20)
    retry_base_delay: float = Field(default=60.0, gt=0, description="Backoff base delay in seconds")
    retry_max_delay: float = Field(default=3600.0, gt=0, description="Backoff cap in seconds")

    shutdown_timeout: float = Field(
        default=10.0,
        ge=0,
        description="Seconds in-flight deliveries may run after deinitialize"
    )

    @field_validator('backend_url')
    @classmethod
    def validate_backend_url(cls, v: str) -> str:
        """Validate the collector URL is HTTP(S)."""
        if not v or not v.startswith(('http://', 'https://')):
            raise ValueError("backend_url must be a valid HTTP/HTTPS URL")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL', 'NONE']
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @model_validator(mode='after')
    def validate_retry_window(self) -> "Settings":
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be >= retry_base_delay")
        return self

    @property
    def retry_queue_path(self) -> Path:
        return self.storage_dir / self.retry_queue_file_name

    @property
    def sent_ids_path(self) -> Path:
        return self.storage_dir / self.sent_ids_file_name


# Global settings instance
settings = Settings()
