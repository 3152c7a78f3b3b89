"""Configuration management for Ruddit Core."""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ruddit_core.infrastructure.retry import RetryPolicy


# Value written by older settings files for credentials never filled in
LEGACY_UNCONFIGURED = "CHANGE_ME"

DEFAULT_INTENT_HIGH = [
    "looking for",
    "recommend",
    "suggestion",
    "alternative to",
    "vs",
    "comparison",
    "review",
    "best",
    "help with",
    "how to",
    "pricing",
    "cost",
    "software",
]

DEFAULT_INTENT_MEDIUM = [
    "issues with",
    "problem",
    "error",
    "question",
    "anyone used",
    "thoughts on",
    "experience with",
]


def default_database_url() -> str:
    """Build the default SQLite URL under the user data directory."""
    data_dir = os.environ.get("RUDDIT_DATA_DIR")
    if data_dir:
        base = Path(data_dir)
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share")) / "ruddit"
    return f"sqlite:///{base / 'ruddit.db'}"


@dataclass(frozen=True)
class IntentPatterns:
    """Ordered keyword lists used to classify post intent."""

    high: tuple[str, ...]
    medium: tuple[str, ...]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = Field(
        default_factory=default_database_url,
        description="SQLAlchemy URL of the local store",
    )

    # Provider: Reddit
    reddit_client_id: Optional[str] = None
    reddit_client_secret: Optional[str] = None
    reddit_username: Optional[str] = None
    reddit_password: Optional[str] = None
    reddit_user_agent: str = Field(default="Ruddit/0.1 (local research client)")
    reddit_redirect_uri: str = Field(default="http://localhost:8080")

    # Intent classification
    intent_high: list[str] = Field(default_factory=lambda: list(DEFAULT_INTENT_HIGH))
    intent_medium: list[str] = Field(default_factory=lambda: list(DEFAULT_INTENT_MEDIUM))

    # Upstream requests
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    listing_limit: int = Field(default=100, ge=1, le=100)
    comment_limit: int = Field(default=500, ge=1)
    search_time_filter: str = Field(default="all")
    comment_max_depth: int = Field(default=64, ge=1)

    # Retry policy
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)

    # Security
    encryption_key: str = Field(
        default="",
        description="Fernet key for the token cache (generate with CryptoService.generate_key())",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    @field_validator(
        "reddit_client_id",
        "reddit_client_secret",
        "reddit_username",
        "reddit_password",
        mode="before",
    )
    @classmethod
    def blank_means_unconfigured(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        if not v or v == LEGACY_UNCONFIGURED:
            return None
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v:
            raise ValueError("DATABASE_URL is required")
        return v

    def intent_patterns(self) -> IntentPatterns:
        """Get the intent keyword lists as an immutable value."""
        return IntentPatterns(
            high=tuple(p.lower() for p in self.intent_high),
            medium=tuple(p.lower() for p in self.intent_medium),
        )

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy for upstream requests."""
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
