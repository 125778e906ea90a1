"""Configuration management for the EVV core."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="EVV_",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="./data/evv.db", description="Path to the SQLite database file")
    db_timeout_seconds: float = Field(
        default=5.0, description="Seconds a connection waits on a locked database before failing"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment reported to Logfire")

    # Schedule read fallback
    use_fallback_on_error: bool = Field(
        default=False,
        description="Serve the demonstration dataset when schedule reads hit a storage failure",
    )


# Application Constants
class Constants:
    """Application-wide constants."""

    # Visit time windows
    VISIT_START_GRACE_MINUTES: int = 5  # Allowed clock drift for backdated starts
    VISIT_END_FUTURE_TOLERANCE_HOURS: int = 1

    # Pagination
    DEFAULT_PAGE: int = 1
    DEFAULT_PAGE_LIMIT: int = 10
    MAX_PAGE_LIMIT: int = 100
    STATUS_QUERY_LIMIT: int = 100  # Rows returned by get_schedules_by_status
    UPCOMING_WINDOW_DAYS: int = 7

    # Field bounds
    MIN_NAME_LENGTH: int = 2
    MAX_NAME_LENGTH: int = 255


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
