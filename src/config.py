"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Kernel settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./compliance_kernel.db"

    # Upstream identity tokens (verified, never issued here)
    identity_secret_key: str = "change-this-in-production-minimum-32-characters-long"
    identity_algorithm: str = "HS256"

    # Impersonation ("view as") sessions
    impersonation_token_expiry_seconds: int = Field(default=3600, ge=1)  # absolute lifetime
    impersonation_inactivity_timeout_seconds: int = Field(default=900, ge=1)  # sliding window
    impersonation_max_active_sessions: int = Field(default=5, ge=1)

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "Compliance Authorization Kernel"
    version: str = "0.1.0"

    @property
    def inactivity_exceeds_expiry(self) -> bool:
        """True when the sliding window can never fire before the absolute one."""
        return self.impersonation_inactivity_timeout_seconds >= self.impersonation_token_expiry_seconds


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
