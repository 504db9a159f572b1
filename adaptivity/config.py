"""
Configuration settings for the adaptivity engine.

Uses Pydantic Settings for environment variable management with .env file support.
Every variable is prefixed with ADAPTIVITY_ (e.g. ADAPTIVITY_EWMA_ALPHA=0.7).
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ADAPTIVITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Metric Smoothing
    # ========================================
    ewma_alpha: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Weight kept by the previous EWMA value on each update",
    )
    latency_clip_min_ms: float = Field(
        default=300,
        description="Observed latencies below this are raised to it before blending",
    )
    latency_clip_max_ms: float = Field(
        default=8000,
        description="Observed latencies above this are lowered to it before blending",
    )

    # ========================================
    # Session Defaults
    # ========================================
    default_lang: Literal["he", "en"] = Field(
        default="he",
        description="Learner language when the caller does not supply one",
    )
    default_device: Literal["mobile", "desktop", "tablet"] = Field(
        default="desktop",
        description="Device class when the caller does not supply one",
    )
    default_policy_version: str = Field(
        default="dev",
        description="Policy version recorded on new sessions",
    )

    # ========================================
    # Selection
    # ========================================
    sticky_default_strength: Literal["weak", "strong"] = Field(
        default="weak",
        description="Sticky strength for variants that do not declare one",
    )
    sticky_default_scope: Literal["session", "lesson", "course"] = Field(
        default="lesson",
        description="Sticky scope for variants that do not declare one",
    )
    trace_by_default: bool = Field(
        default=False,
        description="Record per-variant guard and score values in why",
    )
    honor_override_expiry: bool = Field(
        default=True,
        description="Ignore forced variants whose overrides.expiresAt has passed",
    )

    def get_ewma_config(self) -> dict[str, float]:
        """Get EWMA smoothing configuration as a dictionary."""
        return {
            "alpha": self.ewma_alpha,
            "latency_clip_min_ms": self.latency_clip_min_ms,
            "latency_clip_max_ms": self.latency_clip_max_ms,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
