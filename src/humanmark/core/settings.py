"""
Central configuration for the Humanmark client.

A single typed settings object read from HUMANMARK_* environment variables
(12-factor style) using pydantic-settings.

Usage:

    from humanmark.core.settings import get_settings

    settings = get_settings()
    client = ApiClient(settings.base_url, settings=settings)

All durations are float seconds.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HumanmarkSettings(BaseSettings):
    """
    Retry, timeout and endpoint settings consumed by the request engine
    and orchestrator.
    """

    model_config = SettingsConfigDict(env_prefix="HUMANMARK_", extra="ignore")

    base_url: str = Field(
        default="https://humanmark.io",
        description="Service base URL; the wait call prepends the token region as a subdomain.",
    )
    wait_timeout: float = Field(
        default=600.0,
        gt=0,
        description="Total budget for the long-poll wait operation.",
    )
    create_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Total budget for the create-challenge operation.",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-attempt ceiling; must exceed the server's 25s long-poll hold.",
    )
    initial_delay: float = Field(
        default=1.0,
        ge=0,
        description="Delay before the first retry.",
    )
    backoff_factor: float = Field(
        default=2.0,
        ge=1,
        description="Multiplier applied to the delay per retry.",
    )
    jitter_factor: float = Field(
        default=0.1,
        description="Fractional +/- jitter applied to each delay.",
    )
    max_retries: int = Field(
        default=20,
        ge=1,
        description="Maximum attempts in one retry streak.",
    )
    success_display: float = Field(
        default=1.5,
        ge=0,
        description="How long the console presenter shows the success state.",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level used by the CLI (DEBUG/INFO/WARNING/ERROR).",
    )

    @field_validator("jitter_factor")
    @classmethod
    def _validate_jitter(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")
        return v

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        v = (v or "INFO").upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return "INFO"
        return v


@lru_cache(maxsize=1)
def get_settings() -> HumanmarkSettings:
    """
    Cached accessor for HumanmarkSettings.

    Call get_settings.cache_clear() after changing the environment.
    """
    return HumanmarkSettings()
