"""
Shared configuration management for the Slug Proxy.
"""

from typing import List, Optional

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
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Public origin of the proxy; derived from Host/X-Forwarded-* when unset
    app_base_url: Optional[str] = Field(default=None)

    # Backend addressing
    backend_suffix: str = Field(default="/exec")
    routing_query_param: Optional[str] = Field(default=None)
    proxy_timeout_seconds: float = Field(default=30.0)
    cancel_on_disconnect: bool = Field(default=True)
    disconnect_poll_interval: float = Field(default=0.5)

    # Rate limiting
    rate_limit_requests: int = Field(default=60)
    rate_limit_window_seconds: int = Field(default=60)
    rate_limit_prefix: str = Field(default="proxy")
    rate_limit_fail_open: bool = Field(default=True)

    # HTML rewriting
    bootstrap_symbol: str = Field(default="goog.script.init")
    bootstrap_retry_count: int = Field(default=50)
    bootstrap_retry_delay_ms: int = Field(default=100)
    keep_root_links_on_proxy: bool = Field(default=False)

    # Response headers
    cors_allow_methods: List[str] = Field(default=["GET", "POST", "PUT", "PATCH", "OPTIONS"])
    cors_allow_headers: List[str] = Field(default=["Content-Type"])
    html_cache_control: str = Field(default="public, s-maxage=60, stale-while-revalidate=120")
    asset_cache_control: str = Field(default="public, max-age=31536000, immutable")
    embed_cache_control: str = Field(default="public, s-maxage=300, stale-while-revalidate=600")

    @property
    def is_production(self) -> bool:
        return self.env.lower() in ("production", "prod")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
