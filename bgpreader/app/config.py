"""
Application configuration.
Uses Pydantic BaseSettings for environment variable management.
"""
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from BGPREADER_* environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="BGPREADER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging Configuration
    LOG_LEVEL: str = Field(default="WARNING", description="Level of diagnostics written to stderr")
    LOG_FORMAT: str = Field(default="text", pattern="^(json|text)$")

    # Backend selection
    DEFAULT_BACKEND: str = Field(default="broker", description="Data interface used when -d is not given")

    # Output
    ELEMENT_BUFFER_SIZE: int = Field(
        default=65536,
        ge=64,
        description="Maximum rendered element size in bytes, terminator included",
    )

    # Command-line safety limits
    MAX_PROJECTS: int = Field(default=10, ge=1)
    MAX_COLLECTORS: int = Field(default=100, ge=1)
    MAX_RECORD_TYPES: int = Field(default=10, ge=1)
    MAX_WINDOWS: int = Field(default=1024, ge=1)
    MAX_OPTIONS: int = Field(default=1024, ge=1)

    # RIPE RIS Live Configuration
    RIS_LIVE_ENDPOINT: str = Field(
        default="https://ris-live.ripe.net/v1/stream/",
        description="RIS Live streaming endpoint",
    )
    RIS_LIVE_CLIENT: str = Field(default="bgpreader", description="Client identifier sent to RIS Live")
    RIS_LIVE_IDLE_TIMEOUT: float = Field(
        default=10.0,
        gt=0,
        description="Seconds without data before a non-blocking RIS Live stream counts as exhausted",
    )
    HTTP_TIMEOUT: float = Field(default=30.0, gt=0)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL must be a logging level name, got {v}")
        return level

    @field_validator("RIS_LIVE_ENDPOINT")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("RIS_LIVE_ENDPOINT must be an http(s) URL")
        return v


@lru_cache
def get_settings() -> Settings:
    """Return the process settings, loaded once."""
    return Settings()
