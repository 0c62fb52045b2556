"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables (or a local .env file).
Economic parameters defined here are defaults only: services receive a
``ScopeParameters`` snapshot resolved per request, see ``core.parameters``.
"""

from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Hearth"
    APP_ENV: str = "development"
    DEBUG: bool = False
    SECRET_KEY: str = ""  # Required - also salts voter hashes

    # Database - PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "hearth"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "hearth"
    DATABASE_URL: str | None = None  # Overrides the POSTGRES_* settings when set
    DATABASE_ECHO: bool = False

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Validate that required secrets are set."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    @property
    def POSTGRES_URL(self) -> str:
        """Construct the database connection URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # Ranking
    DAMPING_FACTOR: float = 0.99
    RANKING_EPSILON: float = 0.001
    RANKING_MAX_ITERATIONS: int = 1000

    # Accrual
    POINTS_PER_PARTICIPANT: float = 100.0  # Monthly budget per eligible participant
    INFLATION_FACTOR: float = 1.0
    BOOTSTRAP_HOURS: int = 72  # Window credited on a scope's first emission

    # Claims
    CLAIM_POLL_HOURS: int = 48
    CLAIM_MIN_VOTES: int = 2

    # Challenges
    CHALLENGE_POLL_HOURS: int = 72
    CHALLENGE_QUORUM: float = 0.4
    CHALLENGE_CRITICAL_QUORUM: float = 0.7
    HEARTS_CRITICAL: float = 1.0  # Balances at or below this are critical

    # Purchases
    BUY_POLL_HOURS: int = 24
    BUY_VOTE_UNIT: float = 50.0  # One affirmative vote required per unit of cost

    # Hearts
    HEARTS_BASELINE: float = 5.0
    HEARTS_MAX: float = 5.0  # Regeneration cap
    HEARTS_REGEN_AMOUNT: float = 0.5

    # Penalties
    PENALTY_INCREMENT: float = 5.0
    PENALTY_DELAY_HOURS: int = 72

    # Karma
    KARMA_PROPORTION: int = 3  # One winner per this many voting participants
    KARMA_MAX_HEARTS: float = 10.0
    KARMA_DELAY_HOURS: int = 48


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
