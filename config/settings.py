"""Application settings and configuration management."""
from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or defaults."""

    PUBLIC_AI_VOICE_PROMPT_VERSION: str = "voice-prompt-v1"

    PUBLIC_AI_PHASE_LOW_TIME_SEC: float = Field(default=120, ge=0)
    PUBLIC_AI_PHASE_CRITICAL_TIME_SEC: float = Field(default=45, ge=0)
    PUBLIC_AI_PHASE_CALIBRATION_MIN_ANSWERS: int = Field(default=2, ge=0)
    PUBLIC_AI_PHASE_CORE_MIN_COMPETENCIES: int = Field(default=2, ge=0)
    PUBLIC_AI_PHASE_DEEP_DIVE_MIN_COMPETENCIES: int = Field(default=3, ge=0)
    PUBLIC_AI_PHASE_DEEP_DIVE_MIN_AVERAGE: float = Field(default=3, ge=0)
    PUBLIC_AI_PHASE_WRAP_UP_FATIGUE_SIGNALS: int = Field(default=2, ge=1)
    PUBLIC_AI_PHASE_WRAP_UP_NON_ANSWER_STREAK: int = Field(default=2, ge=1)

    SIGNAL_PATTERNS_PATH: str = str(Path(__file__).with_name("signals.yaml"))

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", validate_assignment=True)


settings = Settings()
