"""
Configuration for sqldatatable.

Uses pydantic-settings to read typed values from environment variables
prefixed with SQLDATATABLE_ and from a .env file.
"""

from typing import Optional

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sqldatatable.database.errors import InvalidArgument
from sqldatatable.database.models import DEFAULT_MAX_ATTEMPTS, RetryPolicy


class Settings(BaseSettings):
    """Configuration for executors built with QueryExecutor.from_settings."""

    model_config = SettingsConfigDict(
        env_prefix="SQLDATATABLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    database_url: str = Field(
        default="",
        validation_alias=AliasChoices("SQLDATATABLE_DATABASE_URL", "DATABASE_URL"),
        description="SQLAlchemy database URL; DATABASE_URL is used as a fallback",
    )
    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS,
        ge=1,
        description="Attempts per query (first try plus retries)",
    )
    retry_delay: float = Field(
        default=0.0,
        ge=0.0,
        description="Seconds to wait between attempts",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level used by configure_logging",
    )
    log_json: bool = Field(
        default=False,
        description="Render log lines as JSON instead of console output",
    )

    @field_validator("database_url")
    @classmethod
    def fix_postgres_scheme(cls, v: str) -> str:
        """Fix postgres:// to postgresql://, which SQLAlchemy requires."""
        return normalize_database_url(v)

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.strip().upper()

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_attempts, delay_seconds=self.retry_delay)


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Read settings from the environment and a .env file.

    Variables already set in the environment win over the .env file.

    Args:
        env_file: Path to a .env file (default: .env in the working directory)

    Returns:
        Settings instance

    Raises:
        InvalidArgument: If a variable cannot be parsed or is out of range
    """
    try:
        if env_file is None:
            return Settings()
        return Settings(_env_file=env_file)
    except ValidationError as e:
        raise InvalidArgument(f"Invalid sqldatatable settings: {e}") from e


def normalize_database_url(database_url: str) -> str:
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url
