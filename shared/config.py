"""
Shared configuration management for the caching proxy.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROXY_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = "local"
    log_level: str = "info"
    log_json: bool = True

    # Cache store
    cache_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379/0"
    cache_key_prefix: str = "proxy:cache"
    cache_ttl_seconds: int = Field(default=60, ge=1)

    # Outbound calls
    outbound_timeout_seconds: float = Field(default=5.0, gt=0)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=0.5, ge=0)
    retry_max_delay_seconds: float = Field(default=5.0, ge=0)

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=3, ge=1)
    circuit_failure_window_seconds: float = Field(default=60.0, gt=0)
    circuit_recovery_timeout_seconds: float = Field(default=30.0, ge=0)

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_permits: int = Field(default=100, ge=1)
    rate_limit_window_seconds: int = Field(default=60, ge=1)
    # Only honour X-Forwarded-For / X-Real-IP behind a trusted reverse proxy
    trust_forwarded_headers: bool = False


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 8000
    host: str = "0.0.0.0"


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
