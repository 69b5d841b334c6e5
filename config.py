"""
Configuration settings for the adaptive tutor.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

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

    # ========================================
    # Persistence
    # ========================================
    state_db_path: Path = Field(
        default=Path.home() / ".tutor" / "state.db",
        description="SQLite file holding the learner model and attempt log",
    )
    learner_id: str = Field(
        default="default",
        description="Learner whose model is loaded and saved",
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

    # ========================================
    # Stats
    # ========================================
    ewma_alpha: float = Field(
        default=0.25,
        gt=0.0,
        le=1.0,
        description="Smoothing constant for the accuracy EWMA",
    )
    latency_alpha: float = Field(
        default=0.3,
        gt=0.0,
        le=1.0,
        description="Smoothing constant for the latency average",
    )
    recent_window: int = Field(
        default=8,
        ge=1,
        description="Recent outcomes used to pick the target tier",
    )

    # ========================================
    # Reviews & Mastery
    # ========================================
    review_delay_minutes: float = Field(
        default=20.0,
        gt=0.0,
        description="Delay before a missed question is forced back",
    )
    schedule_decay_reviews: bool = Field(
        default=True,
        description="Queue a spaced review after correct answers",
    )
    mastery_required_correct: int = Field(
        default=3,
        ge=1,
        description="Consecutive correct answers before the recall check",
    )

    # ========================================
    # Weights & Tier Adjustment
    # ========================================
    min_weight: float = Field(default=0.5, ge=0.0, description="Lowest sampling weight")
    max_weight: float = Field(default=3.0, ge=0.0, description="Highest sampling weight")
    weight_aggressiveness: float = Field(
        default=2.2,
        ge=0.0,
        description="How strongly weak formulas are oversampled",
    )
    up_streak_threshold: int = Field(
        default=3,
        ge=1,
        description="Base success streak that promotes a question one tier",
    )
    down_streak_threshold: int = Field(
        default=2,
        ge=1,
        description="Miss streak that demotes a question one tier",
    )

    # ========================================
    # Refine Service
    # ========================================
    refine_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the question refine service",
    )
    refine_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Client-side timeout for refine requests",
    )

    def has_refine_configured(self) -> bool:
        """Check if a refine service URL is set."""
        return bool(self.refine_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
