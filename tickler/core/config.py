"""Configuration management for tickler."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="data/tickler.db", description="Path to the task/occurrence SQLite file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment tag for traces")

    # Projection windows for infinite recurrences
    weekly_lookahead_weeks: int = Field(default=8, ge=1, description="Weeks projected ahead for infinite weekly rules")
    monthly_lookahead_months: int = Field(
        default=2, ge=1, description="Months materialized ahead for infinite monthly rules"
    )
    yearly_lookahead_years: int = Field(
        default=2, ge=1, description="Years materialized ahead for infinite yearly rules"
    )
    default_horizon_days: int = Field(
        default=14, ge=1, le=365, description="Daily horizon used when a rule does not carry one"
    )


# Application Constants
class Constants:
    """Application-wide constants."""

    # Rule parameter bounds
    MAX_HORIZON_DAYS: int = 365
    MAX_OFFSET_DAYS: int = 365
    MAX_INTERVAL: int = 365

    # Generation safety caps
    MONTHLY_ITERATION_CAP: int = 240
    YEARLY_ITERATION_CAP: int = 200
    WEEKLY_ITERATION_CAP_WEEKS: int = 520

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100  # Page size used when draining a collection
    DEFAULT_EVENT_LIMIT: int = 50

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
