"""
Application configuration using pydantic-settings.
Loads configuration from environment variables and .env file.
"""

from typing import Dict, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Supports loading from .env file for local development.
    """

    # Freshdesk API Configuration
    FRESHDESK_DOMAIN: str = Field(
        description="Full Freshdesk domain (e.g., 'company.freshdesk.com')"
    )
    FRESHDESK_API_KEY: str = Field(
        description="Freshdesk API key (sent as basic auth username)"
    )
    FRESHDESK_PER_PAGE: int = Field(
        default=30,
        description="Page size the Freshdesk search API returns (remote default is 30)"
    )
    FRESHDESK_TIMEOUT: float = Field(
        default=20.0,
        description="Per-request timeout in seconds"
    )
    FRESHDESK_MAX_RETRIES: int = Field(
        default=3,
        description="Retries for 429/5xx/network errors before giving up"
    )
    FRESHDESK_RATE_LIMIT: int = Field(
        default=200,
        description="Maximum Freshdesk requests per minute issued by this process"
    )
    FD_WEBHOOK_SECRET: str = Field(
        default="",
        description="Shared secret expected in the X-FD-Secret webhook header"
    )

    # Database Configuration
    DATABASE_URL: str = Field(
        description="PostgreSQL database URL (use postgresql+asyncpg:// for async)"
    )

    # Security Configuration
    API_KEY: str = Field(
        description="Key expected in the X-API-Key header for /api routes"
    )

    # CORS Configuration
    CORS_ORIGINS: str = Field(
        default="http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # Environment
    ENVIRONMENT: str = Field(
        default="development",
        description="Application environment: development, staging, production"
    )

    # Logging Configuration
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    # Sync Configuration
    SYNC_CONCURRENCY: int = Field(
        default=10,
        description="Maximum in-flight ticket detail requests during a sync run"
    )
    SYNC_DEFAULT_LOOKBACK_DAYS: int = Field(
        default=7,
        description="Lookback window used when no 'since' is supplied"
    )
    SYNC_RUN_TIMEOUT: Optional[float] = Field(
        default=None,
        description="Seconds before a whole sync run is cancelled (None = no limit)"
    )
    SYNC_REQUIRE_ORGANIZATION: bool = Field(
        default=False,
        description="Treat tickets without a resolvable organization as malformed"
    )
    SYNC_SCHEDULE_ENABLED: bool = Field(
        default=False,
        description="Run the closed-ticket sync on a cron schedule"
    )
    SYNC_CRON: str = Field(
        default="*/30 * * * *",
        description="Crontab expression for the scheduled sync"
    )
    SYNC_TIMEZONE: str = Field(
        default="America/Santiago",
        description="Timezone the cron expression is evaluated in"
    )
    SYNC_OVERLAP_MINUTES: int = Field(
        default=10,
        description="Overlap subtracted from the scheduler cursor to avoid gaps"
    )
    ORG_ALIASES: Dict[str, str] = Field(
        default_factory=dict,
        description="JSON map of normalized organization name -> canonical name"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def freshdesk_api_url(self) -> str:
        """Get the base Freshdesk API URL."""
        return f"https://{self.FRESHDESK_DOMAIN}/api/v2"

    @property
    def database_url_sync(self) -> str:
        """Get synchronous database URL for Alembic migrations."""
        return self.DATABASE_URL.replace("postgresql+asyncpg://", "postgresql://")

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    def __repr__(self) -> str:
        """
        Custom repr that masks sensitive values.

        Prevents accidental exposure of credentials in logs.
        """
        sensitive_fields = {
            "FRESHDESK_API_KEY",
            "FD_WEBHOOK_SECRET",
            "API_KEY",
            "DATABASE_URL",
        }

        fields = []
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            if field_name in sensitive_fields and value:
                if isinstance(value, str) and len(value) > 8:
                    masked = value[:4] + "***" + value[-4:]
                else:
                    masked = "***"
                fields.append(f"{field_name}={masked!r}")
            else:
                fields.append(f"{field_name}={value!r}")

        return f"Settings({', '.join(fields)})"


# Create singleton settings instance
settings = Settings()
