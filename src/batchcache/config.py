"""
Configuration management for the batch cache.

Supports configuration via environment variables and .env files.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BatcherConfig(BaseSettings):
    """
    Configuration settings for the Batcher.

    All settings can be configured via environment variables with the BATCHCACHE_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="BATCHCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Batching parameters
    window_size: int = Field(
        default=10,
        ge=1,
        description="Number of universe positions covered by one batch, starting at the fetched id"
    )
    fetch_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Default per-fetch timeout (disabled when unset)"
    )

    # HTTP resolver settings
    resolver_url: Optional[str] = Field(
        default=None,
        description="Base URL of the batch lookup endpoint"
    )
    resolver_path: str = Field(
        default="",
        description="Path appended to the resolver base URL"
    )
    resolver_ids_param: str = Field(
        default="ids",
        description="Query parameter carrying the comma-separated identifiers"
    )
    resolver_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP client timeout for resolver calls"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )


# Global config instance
_config: Optional[BatcherConfig] = None


def get_config() -> BatcherConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = BatcherConfig()
    return _config


def set_config(config: BatcherConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
