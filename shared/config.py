"""
Shared configuration management for the rules engine.
"""

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Engine configuration read from RULES_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RULES_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    service_name: str = Field(default="rules_engine")

    # Almanac
    allow_undefined_facts: bool = Field(default=False)
    enable_fact_caching: bool = Field(default=True)
    cache_max_size: int = Field(default=0, ge=0)

    # Engine
    max_concurrency: int = Field(default=1, ge=1)
    replace_facts_in_event_params: bool = Field(default=True)
    continue_on_error: bool = Field(default=False)

    # Observability
    enable_metrics: bool = Field(default=False)


def get_config(**overrides: Any) -> BaseConfig:
    """Get engine configuration, with explicit overrides taking precedence over the environment."""
    return BaseConfig(**overrides)
