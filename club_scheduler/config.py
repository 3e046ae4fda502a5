"""
Configuration management for Club Scheduler.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/club_scheduler.db",
        description="Database connection URL"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    api_reload: bool = Field(
        default=True,
        description="Enable auto-reload in development"
    )

    # Recurrence
    month_day_policy: Literal["skip", "clip"] = Field(
        default="skip",
        description=(
            "What to do when a month day does not exist in a month "
            "(e.g. the 31st in April): 'skip' the month or 'clip' to its last day"
        )
    )
    max_expansion_instances: int = Field(
        default=500,
        ge=1,
        description="Upper bound on occurrences returned by instance listings"
    )

    # Booking
    default_event_status: Literal["draft", "pending", "confirmed"] = Field(
        default="pending",
        description="Status given to newly created events (pending = awaiting approval)"
    )
    auto_confirm_bookings: bool = Field(
        default=False,
        description="Create resource bookings as confirmed instead of pending"
    )
    lock_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="How long a booking waits for a resource/team/location lock"
    )
    series_check_horizon_days: int = Field(
        default=366,
        ge=1,
        description="How far ahead an open-ended series is checked for conflicts"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    def validate_production_config(self) -> None:
        """
        Validate configuration for production environment.

        Raises:
            ValueError: If required production settings are missing or invalid
        """
        if not self.is_production:
            return

        errors = []

        # Advisory locks across processes need PostgreSQL
        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )

        if self.api_reload:
            errors.append("API_RELOAD must be disabled in production.")

        if errors:
            raise ValueError("Production configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.
    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from club_scheduler.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.month_day_policy)
    """
    return Settings()
