"""Configuration management for studioflow."""

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

    # Document store
    sqlite_db_path: str = Field(default="data/studioflow.db", description="SQLite document store file path")

    # Redis Configuration (optional, backs the real-time push channel)
    redis_url: str | None = Field(default=None, description="Redis connection URL (e.g., redis://localhost:6379)")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Notifications
    notification_retention_days: int = Field(
        default=30, description="Days a notification is kept before it becomes eligible for purge"
    )

    # Visibility
    design_lead_scoped_visibility: bool = Field(
        default=False,
        description="Limit Design Leads to tasks they lead, tasks they design, and unassigned tasks",
    )

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value

    @property
    def is_production(self) -> bool:
        """Whether the service runs in production."""
        return self.environment.lower() == "production"


# Application Constants
class Constants:
    """Application-wide constants."""

    # Workload capacity bands (upper bounds, inclusive)
    CAPACITY_LOW_MAX_SCORE: int = 5
    CAPACITY_MEDIUM_MAX_SCORE: int = 10
    CAPACITY_HIGH_MAX_SCORE: int = 20

    # Star rating assumed for unrated tasks in aggregate dashboards
    DEFAULT_AGGREGATE_STAR_RATING: int = 3
    MAX_STAR_RATING: int = 5

    # Notifications
    COMMENT_PREVIEW_LENGTH: int = 100
    DEFAULT_NOTIFICATION_LIMIT: int = 50
    PUSH_CHANNEL_PREFIX: str = "notifications:user:"
    PUSH_EVENT_NAME: str = "new_notification"

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100

    # Redis Configuration
    REDIS_MAX_CONNECTIONS: int = 10


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
