"""
Shared configuration management for the emoji gallery service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


MET_COLLECTION_API_URL = "https://collectionapi.metmuseum.org/public/collection/v1"


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="GALLERY_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Upstream collection API
    upstream_base_url: str = Field(default=MET_COLLECTION_API_URL)
    search_timeout_seconds: float = Field(default=15.0, gt=0)
    detail_timeout_seconds: float = Field(default=7.0, gt=0)
    search_has_images: bool = Field(default=True)

    # Pacing (token bucket per upstream endpoint)
    request_interval_seconds: float = Field(default=0.5, ge=0)
    request_burst: int = Field(default=1, ge=1)

    # Retries (linear backoff: base_delay * attempt)
    search_max_retries: int = Field(default=3, ge=1)
    detail_max_retries: int = Field(default=5, ge=1)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)

    # Batching and refill policy
    batch_size: int = Field(default=5, ge=1)
    refill_target_count: int = Field(default=25, ge=1)
    discovery_stop_at_first_success: bool = Field(default=False)
    memoize_transient_failures: bool = Field(default=False)
    rediscover_on_exhaustion: bool = Field(default=False)

    # Bounded process-wide stores (0 = unbounded)
    failure_memo_max_entries: int = Field(default=100_000, ge=0)
    failure_memo_ttl_seconds: Optional[float] = Field(default=None, gt=0)
    max_tracked_keys: int = Field(default=1024, ge=0)

    # Key table override
    key_table_file: Optional[str] = Field(default=None)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
