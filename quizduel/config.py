"""Application configuration management."""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from sqlalchemy.engine.url import make_url, URL
from typing import Optional
import logging

SQLITE_LOCAL_URL = "sqlite+aiosqlite:///./quizduel.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = SQLITE_LOCAL_URL
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Redis (optional, falls back to in-memory)
    redis_url: str = ""

    # Application
    frontend_url: str = "https://learn.quizduel.app"
    environment: str = "development"
    secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_exp_minutes: int = 120

    # Challenge lifecycle
    challenge_min_questions: int = 5
    challenge_default_time_limit_seconds: int = 300  # 5 minutes to answer
    challenge_expiry_minutes: int = 60  # Stale pending/in_progress challenges expire after this window
    submission_grace_seconds: int = 5  # Grace period for late submissions
    expiry_sweep_interval_minutes: int = 5

    # Leaderboard points
    points_win: int = 50
    points_lose: int = 10
    points_draw: int = 25

    # Token rewards (whole tokens)
    reward_base_tokens: int = 100
    reward_victory_bonus: int = 50
    reward_perfect_score_bonus: int = 25
    reward_participation_tokens: int = 10
    reward_nft_threshold_percent: int = 80

    # Evaluation queue
    evaluation_queue_name: str = "challenge_evaluation"
    evaluation_poll_interval_seconds: float = 1.0
    evaluation_max_attempts: int = 5
    # Not-ready jobs wait backoff * attempt seconds before the next try
    evaluation_retry_backoff_seconds: float = 2.0

    # Rate limiting for challenge endpoints
    challenge_rate_limit: int = 10
    challenge_rate_limit_window_seconds: int = 60

    # Email provider (empty URL logs messages instead of sending)
    email_api_url: str = ""
    email_api_key: str = ""
    email_sender: str = "challenges@quizduel.app"
    email_timeout_seconds: int = 15

    # Token / NFT service (empty URL uses the simulated allocator)
    token_service_url: str = ""
    token_service_api_key: str = ""
    token_service_timeout_seconds: int = 30

    @model_validator(mode="after")
    def validate_all_config(self):
        """Validate security configuration and normalize Postgres URLs."""
        logger = logging.getLogger(__name__)

        if self.environment == "production":
            if self.secret_key == "dev-secret-key-change-in-production":
                raise ValueError("secret_key must be changed from default value in production")

        if self.jwt_algorithm not in ["HS256", "HS384", "HS512"]:
            raise ValueError(f"Unsupported JWT algorithm: {self.jwt_algorithm}. Use HS256, HS384, or HS512.")

        if self.access_token_exp_minutes < 1 or self.access_token_exp_minutes > 1440:
            raise ValueError("access_token_exp_minutes must be between 1 and 1440 (24 hours)")

        if self.challenge_min_questions < 1:
            raise ValueError("challenge_min_questions must be at least 1")

        if self.evaluation_max_attempts < 1:
            raise ValueError("evaluation_max_attempts must be at least 1")

        if self.evaluation_poll_interval_seconds <= 0:
            raise ValueError("evaluation_poll_interval_seconds must be positive")

        if self.evaluation_retry_backoff_seconds < 0:
            raise ValueError("evaluation_retry_backoff_seconds must not be negative")

        if self.expiry_sweep_interval_minutes < 1:
            raise ValueError("expiry_sweep_interval_minutes must be at least 1 minute")

        if not 0 <= self.reward_nft_threshold_percent <= 100:
            raise ValueError("reward_nft_threshold_percent must be between 0 and 100")

        # Database URL normalization
        url = self.database_url
        if not url:
            logger.warning("Empty DATABASE_URL, using SQLite fallback")
            self.database_url = SQLITE_LOCAL_URL
            return self

        parsed: Optional[URL] = None
        try:
            parsed = make_url(url)
        except Exception as e:  # pragma: no cover
            logger.error(f"Failed to parse DATABASE_URL: {e}")
            self.database_url = SQLITE_LOCAL_URL
            return self

        drivername = parsed.drivername
        if drivername.startswith("postgres") and "+asyncpg" not in drivername:
            parsed = parsed.set(drivername="postgresql+asyncpg")
            logger.info(f"Driver normalized: {drivername} -> {parsed.drivername}")
        # render_as_string re-encodes special characters in the password
        self.database_url = parsed.render_as_string(hide_password=False)

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
