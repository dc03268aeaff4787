"""Pipeline settings.

Values come from keyword arguments, ``STEPGEN_*`` environment variables or a
``.env`` file in the working directory, in that order of precedence.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STEPGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Matching
    fuzzy_threshold: float = Field(0.85, ge=0.0, le=1.0, description="Minimum similarity for a fuzzy catalog match")
    learned_similarity_threshold: float = Field(0.7, ge=0.0, le=1.0)
    learned_min_confidence: float = Field(0.5, ge=0.0, le=1.0)
    use_knowledge_base: bool = True
    record_usage: bool = True

    # Learning lifecycle
    promotion_confidence: float = Field(0.9, ge=0.0, le=1.0)
    promotion_min_successes: int = Field(5, ge=1)
    promotion_min_contexts: int = Field(2, ge=1)
    max_fail_count: int = Field(2, ge=0)
    min_success_rate: float = Field(0.85, ge=0.0, le=1.0)
    trusted_confidence: float = Field(0.7, ge=0.0, le=1.0)
    retention_days: int = Field(90, ge=1)
    merge_threshold: float = Field(0.9, ge=0.0, le=1.0)
    wilson_z: float = Field(1.96, gt=0.0, description="z used for the Wilson lower bound on learned confidence")

    # Diagnostics
    auto_apply_floor: float = Field(0.7, ge=0.0, le=1.0)
    max_suggestions: int = Field(3, ge=1, le=3)

    # Files
    knowledge_path: str = ".stepgen/learned-patterns.json"
    events_path: Optional[str] = ".stepgen/learning-events.jsonl"
    telemetry_path: Optional[str] = ".stepgen/blocked-steps.jsonl"
    glossary_path: Optional[str] = None
    discovered_patterns_path: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings()
