"""
Shared configuration management for VID-Pipe.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="VIDPIPE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Durable store
    store_backend: str = Field(default="memory", description="'rest' or 'memory'")
    store_url: str = Field(default="")
    store_key: str = Field(default="")
    store_table: str = Field(default="identity_verifications")
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    record_ttl_seconds: int = Field(default=86400, ge=0)

    # Volatile cache
    cache_max_size: int = Field(default=5000, ge=1)
    cache_ttl_seconds: float = Field(default=3600.0, gt=0)

    # Compute oracle
    compute_latency_seconds: float = Field(default=1.5, ge=0)
    compute_timeout_seconds: float = Field(default=10.0, gt=0)
    proof_secret: str = Field(default="vid-pipe-dev")
    coalesce_inflight: bool = Field(default=False)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 3000
    host: str = "0.0.0.0"


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service.

    ``port`` is the service default; ``VIDPIPE_PORT`` or an explicit override
    wins over it.
    """
    config = ServiceConfig(service_name=service_name, **overrides)
    if "port" not in config.model_fields_set:
        config.port = port
    return config
