"""
Engine Configuration

Validated settings for the engine and its Redis store, loaded from the
environment (or a .env file) by the embedding application and passed in
explicitly. The engine itself never reads the environment.

Uses Pydantic Settings for centralized, testable validation.
"""

import logging
from datetime import timedelta
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from .constants import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_KEY_PREFIX, DEFAULT_MAX_REDIRECTS

logger = logging.getLogger(__name__)


class EngineSettings(BaseSettings):
    """Validated engine configuration."""

    # Triggers arriving within this many seconds of a state entry are queued
    FSM_DEBOUNCE_SECONDS: float = DEFAULT_DEBOUNCE_SECONDS

    # Entry redirects allowed before RedirectCycleError
    FSM_MAX_REDIRECTS: int = DEFAULT_MAX_REDIRECTS

    # Redis store
    REDIS_URL: str = "redis://localhost:6379"
    FSM_KEY_PREFIX: str = DEFAULT_KEY_PREFIX
    FSM_TRAVERSER_TTL: Optional[int] = None  # Seconds; unset = never expire

    @field_validator('FSM_DEBOUNCE_SECONDS')
    @classmethod
    def validate_debounce(cls, v: float) -> float:
        if v < 0:
            raise ValueError("FSM_DEBOUNCE_SECONDS cannot be negative")
        return v

    @field_validator('FSM_MAX_REDIRECTS')
    @classmethod
    def validate_max_redirects(cls, v: int) -> int:
        if v < 1:
            raise ValueError("FSM_MAX_REDIRECTS must be at least 1")
        return v

    @field_validator('FSM_TRAVERSER_TTL')
    @classmethod
    def validate_ttl(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("FSM_TRAVERSER_TTL must be positive when set")
        return v

    @property
    def debounce_window(self) -> timedelta:
        return timedelta(seconds=self.FSM_DEBOUNCE_SECONDS)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",  # Allow extra env vars without validation errors
    }


def load_settings() -> EngineSettings:
    """Load settings from the environment, logging (never echoing) the result."""
    settings = EngineSettings()
    logger.info(
        f"Engine settings loaded: debounce={settings.FSM_DEBOUNCE_SECONDS}s, "
        f"max_redirects={settings.FSM_MAX_REDIRECTS}, ttl={settings.FSM_TRAVERSER_TTL}"
    )
    return settings
