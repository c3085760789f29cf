"""
Configuration Management using Pydantic Settings
=================================================
Loads the service settings from environment variables with .env file support.

The logging core only consumes two values from here:
- environment: selects JSON (production) or logfmt text (anything else)
- log_level: minimum level; records below it are never rendered
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logging import parse_level


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_name: str = Field(default="upload-service", description="Application name")
    environment: str = Field(
        default="development",
        description="Deployment environment tag; 'production' switches logs to JSON",
    )
    log_level: str = Field(default="info", description="debug, info, warn or error")

    @field_validator("environment", "log_level")
    @classmethod
    def normalize(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def min_level(self) -> int:
        """Stdlib level number for log_level; unknown names fall back to INFO."""
        return parse_level(self.log_level)


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
