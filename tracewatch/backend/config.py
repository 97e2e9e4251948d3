"""
backend/config.py

Application configuration via Pydantic Settings.
All values can be overridden with environment variables or a .env file.

Quick start — create a .env file in your project root:
    REQUIRE_LOW_TTL_PRECURSOR=false
    DETECTION_THRESHOLD=3
    EPOCH_SECONDS=180
"""

from __future__ import annotations

import math

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Traceroute detection
    REQUIRE_LOW_TTL_PRECURSOR: bool = True
    DETECTION_THRESHOLD: float = 1.0
    EPOCH_SECONDS: float = 180.0   # 3 minutes

    # Notice suppression — same src/proto notice at most once per interval
    NOTICE_SUPPRESS_SECONDS: int = 3600

    # Recent detections kept in memory for the API
    DETECTION_LOG_MAX: int = 1_000

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("EPOCH_SECONDS")
    @classmethod
    def epoch_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("EPOCH_SECONDS must be positive")
        return v

    @field_validator("DETECTION_THRESHOLD")
    @classmethod
    def threshold_positive(cls, v: float) -> float:
        # A missing precursor gates at 0, which must never cross
        if not math.isfinite(v) or v <= 0:
            raise ValueError("DETECTION_THRESHOLD must be a positive number")
        return v


settings = Settings()
