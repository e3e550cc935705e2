"""
Nostr Search Configuration

Uses pydantic-settings to load configuration from environment variables and .env file.
All settings are validated on startup; a missing connection string or missing
credentials for the selected embedding provider is the only fatal error.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or a .env file.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Database
    # =========================================================================
    DATABASE_URL: str

    # =========================================================================
    # Connection Pool (SQLAlchemy)
    # =========================================================================
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600

    # =========================================================================
    # Embedding Provider
    # =========================================================================
    EMBEDDING_PROVIDER: Literal["cloudflare", "gemini", "openai", "http"] = "cloudflare"
    EMBEDDING_MODEL: Optional[str] = None  # None → provider default
    EMBEDDING_DIMENSIONS: int = 1024
    EMBEDDING_TIMEOUT_SECONDS: float = 30.0
    EMBEDDING_API_KEY: Optional[str] = None
    CLOUDFLARE_ACCOUNT_ID: Optional[str] = None
    EMBEDDING_URL: Optional[str] = None  # Only for the generic "http" provider
    EMBEDDING_RESPONSE_PATH: str = "embedding"

    # =========================================================================
    # Search
    # =========================================================================
    SEARCH_DEFAULT_LIMIT: int = 10
    SIMILAR_DEFAULT_LIMIT: int = 5
    TAG_VALUES_DEFAULT_LIMIT: int = 100

    # =========================================================================
    # Monitoring
    # =========================================================================
    SENTRY_DSN: Optional[str] = None  # Optional - disabled if not set

    # =========================================================================
    # Application
    # =========================================================================
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def _check_provider_credentials(self) -> "Settings":
        provider = self.EMBEDDING_PROVIDER
        missing = []
        if provider in ("cloudflare", "gemini", "openai") and not self.EMBEDDING_API_KEY:
            missing.append("EMBEDDING_API_KEY")
        if provider == "cloudflare" and not self.CLOUDFLARE_ACCOUNT_ID:
            missing.append("CLOUDFLARE_ACCOUNT_ID")
        if provider == "http" and not self.EMBEDDING_URL:
            missing.append("EMBEDDING_URL")
        if missing:
            raise ValueError(
                f"embedding provider '{provider}' requires: {', '.join(missing)}"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once per process.
    """
    return Settings()
