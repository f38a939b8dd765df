"""
Shared configuration management for the reward verification service.
"""

import json
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_KEY_URLS = [
    "https://www.gstatic.com/admob/reward/verifier-keys.json",
    "https://gstatic.com/admob/reward/verifier-keys.json",
]


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias="REWARDS_ENV")
    log_level: str = Field(default="info", validation_alias="REWARDS_LOG_LEVEL")

    # Key distribution (primary first, mirrors after)
    key_urls: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_KEY_URLS),
        validation_alias="REWARDS_KEY_URLS",
    )
    key_cache_ttl_seconds: float = Field(default=3600.0, validation_alias="REWARDS_KEY_CACHE_TTL_SECONDS")
    key_fetch_timeout_seconds: float = Field(default=5.0, validation_alias="REWARDS_KEY_FETCH_TIMEOUT_SECONDS")
    key_warmup_on_startup: bool = Field(default=False, validation_alias="REWARDS_KEY_WARMUP_ON_STARTUP")

    # Per-source circuit breaker
    key_source_failure_threshold: int = Field(default=5, validation_alias="REWARDS_KEY_SOURCE_FAILURE_THRESHOLD")
    key_source_recovery_timeout: float = Field(default=30.0, validation_alias="REWARDS_KEY_SOURCE_RECOVERY_TIMEOUT")

    @field_validator("key_urls", mode="before")
    @classmethod
    def split_key_urls(cls, v):
        # accept either a JSON list or "https://a/keys.json,https://b/keys.json"
        if isinstance(v, str):
            stripped = v.strip()
            if stripped.startswith("["):
                return json.loads(stripped)
            return [part.strip() for part in stripped.split(",") if part.strip()]
        return v

    @field_validator("key_urls")
    @classmethod
    def require_key_urls(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one key URL must be configured")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return (v or "info").strip().lower()


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = Field(default=3000, validation_alias="PORT")
    host: str = Field(default="0.0.0.0", validation_alias="REWARDS_HOST")

    def __init__(self, service_name: str, **kwargs):
        super().__init__(service_name=service_name, **kwargs)


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
