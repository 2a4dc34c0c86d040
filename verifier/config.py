"""Central configuration for the employee verification service.

This module uses Pydantic Settings for validation and env management.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class LookupBackend(str, Enum):
    """People-data lookup backend."""
    FIXTURE = "fixture"
    HTTP = "http"


class UploadSettings(BaseSettings):
    """Spreadsheet upload limits."""
    model_config = SettingsConfigDict(env_prefix="UPLOAD_", extra="ignore")

    max_size_bytes: int = Field(default=10 * 1024 * 1024, ge=1, description="Upload size ceiling")
    allowed_extensions: list[str] = Field(default_factory=lambda: [".xlsx", ".xls", ".csv"])


class HeaderDetectionSettings(BaseSettings):
    """Column header detection configuration."""
    model_config = SettingsConfigDict(env_prefix="HEADERS_", extra="ignore")

    fuzzy_enabled: bool = Field(default=True)
    fuzzy_threshold: int = Field(default=90, ge=0, le=100, description="Rapidfuzz score threshold")


class MatchingSettings(BaseSettings):
    """Matching run configuration."""
    model_config = SettingsConfigDict(env_prefix="MATCHING_", extra="ignore")

    batch_size: int = Field(default=5, ge=1, le=100, description="Records per lookup group")
    batch_delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0, description="Pause between groups")
    concurrent_lookups: bool = Field(default=True, description="Dispatch a group's lookups concurrently")


class LookupSettings(BaseSettings):
    """People-data API configuration."""
    model_config = SettingsConfigDict(env_prefix="LOOKUP_", extra="ignore")

    backend: LookupBackend = Field(default=LookupBackend.FIXTURE)
    base_url: str = Field(default="https://api.peopledata.example.com/v1")
    api_key: SecretStr = Field(default=SecretStr(""))
    timeout_seconds: float = Field(default=10.0, gt=0.0, le=120.0)
    retry_on_timeout: bool = Field(default=True)


class LoggingSettings(BaseSettings):
    """Logging configuration."""
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: str = Field(default="INFO")
    format: str = Field(default="json")
    file: str | None = Field(default=None)
    slow_request_ms: float = Field(default=3000.0, gt=0.0)


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Field(default=Environment.DEVELOPMENT)
    debug: bool = Field(default=False)
    app_name: str = Field(default="Employee Verification")
    version: str = Field(default="0.1.0")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
    )

    # Sub-configs
    upload: UploadSettings = Field(default_factory=UploadSettings)
    headers: HeaderDetectionSettings = Field(default_factory=HeaderDetectionSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    lookup: LookupSettings = Field(default_factory=LookupSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
