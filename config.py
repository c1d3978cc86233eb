"""
Configuration settings for the TOEIC Part 5 review scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_DATA_DIR = Path.home() / ".toeic_review"
DEFAULT_QUESTIONS_DIR = PROJECT_ROOT / "data" / "courses"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TOEIC_REVIEW_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DATA_DIR / 'review.db'}",
        description="SQLAlchemy URL of the local review database",
    )
    storage_retry_attempts: int = Field(
        default=1,
        ge=0,
        description="Retries on transient storage failures before giving up",
    )

    # ========================================
    # Question corpus
    # ========================================
    questions_dir: Path = Field(
        default=DEFAULT_QUESTIONS_DIR,
        description="Directory with course JSON files (quizSets/questions); set TOEIC_REVIEW_QUESTIONS_DIR for an installed copy",
    )

    # ========================================
    # Review sessions
    # ========================================
    free_session_cap: int = Field(
        default=20,
        ge=1,
        description="Maximum due items per session for free-tier users",
    )
    is_premium_user: bool = Field(
        default=False,
        description="Premium users review every due item in one session",
    )

    # ─── SM-2 policy ─────────────────────────────────────────────────────────
    sm2_initial_ease: float = Field(
        default=2.5,
        ge=1.3,
        description="Ease factor of a question reviewed for the first time",
    )
    sm2_minimum_ease: float = Field(
        default=1.3,
        ge=1.3,
        description="Lower bound of the ease factor",
    )
    sm2_lapse_penalty: float = Field(
        default=0.2,
        ge=0,
        description="Ease factor reduction after a failed review",
    )
    sm2_first_interval_days: int = Field(
        default=1,
        ge=1,
        description="Interval after the first successful review",
    )
    sm2_second_interval_days: int = Field(
        default=6,
        ge=1,
        description="Interval after the second successful review",
    )
    sm2_relearn_interval_days: int = Field(
        default=1,
        ge=1,
        description="Interval after a failed review",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
