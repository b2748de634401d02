"""
Configuration management for award-reconciler.

This module provides centralized configuration for the library,
supporting environment variables, .env files, and programmatic configuration.

Usage:
    >>> from award_reconciler.config import get_config, configure
    >>>
    >>> # Get current config
    >>> config = get_config()
    >>> print(config.cache_ttl_seconds)

    >>> # Update config programmatically
    >>> configure(max_retries=5, cache_backend="sqlite")
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from .types import CacheBackend


class ReconcilerConfig(BaseSettings):
    """
    Configuration for award-reconciler.

    Settings can be provided via:
    1. Environment variables (prefixed with AWARD_RECONCILER_)
    2. .env file
    3. Direct instantiation

    Example:
        Set via environment:
        $ export AWARD_RECONCILER_CACHE_TTL_SECONDS=900
        $ export AWARD_RECONCILER_LIVE_VERIFICATION_PROGRAMS='["AS","B6"]'

        Or in code:
        >>> from award_reconciler.config import configure
        >>> configure(lookup_timeout_seconds=30)
    """

    # Live search backend
    live_search_base_url: str = Field(
        default="https://api.bbairtools.com/api",
        description="Base URL; programs are posted to {base}/live-search-{program}"
    )
    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="HTTP client timeout for a single live-search call"
    )
    lookup_timeout_seconds: Optional[float] = Field(
        default=60.0,
        gt=0,
        description="Upper bound on one verification lookup, retries included (None = wait forever)"
    )
    max_workers: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Thread pool size for concurrent live-search calls"
    )
    live_verification_programs: List[str] = Field(
        default_factory=lambda: ["AS", "B6"],
        description="Airline codes whose programs support live verification"
    )

    # Directory
    directory_path: Optional[str] = Field(
        default=None,
        description="JSON file with airports, airlines and reliability rows for the HTTP API"
    )

    # Cache settings
    cache_ttl_seconds: int = Field(
        default=1800,
        ge=1,
        description="Lifetime of a cached live-search result"
    )
    cache_backend: CacheBackend = Field(
        default="memory",
        description="Cache storage backend"
    )
    cache_db_path: str = Field(
        default="live_search_cache.db",
        description="SQLite file for the sqlite cache backend"
    )

    # Retry settings
    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries after the first attempt for programs without their own policy"
    )
    retry_base_delay: float = Field(
        default=5.0,
        ge=0.0,
        le=60.0,
        description="Base delay between retries in seconds"
    )
    retry_max_delay: float = Field(
        default=30.0,
        ge=0.0,
        le=300.0,
        description="Maximum delay between retries in seconds"
    )
    retry_exponential_base: float = Field(
        default=1.0,
        ge=1.0,
        le=4.0,
        description="Exponential base for backoff calculation (1.0 = fixed delay)"
    )
    retry_jitter: bool = Field(
        default=False,
        description="Add random jitter to retry delays"
    )

    # HTTP API
    api_key: Optional[str] = Field(
        default=None,
        description="Require this value in the X-API-Key header when set"
    )
    rate_limit: int = Field(
        default=60,
        ge=1,
        description="Requests per minute per client"
    )
    cors_origins: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    model_config = {
        "env_prefix": "AWARD_RECONCILER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Global configuration instance
_config: Optional[ReconcilerConfig] = None


def get_config() -> ReconcilerConfig:
    """
    Get the global configuration instance.

    Creates a new instance from environment variables on first call,
    then returns the cached instance.
    """
    global _config
    if _config is None:
        _config = ReconcilerConfig()
    return _config


def configure(**kwargs) -> ReconcilerConfig:
    """
    Update global configuration with new values.

    Creates a new configuration instance with the provided values,
    falling back to current values for unspecified options.

    Example:
        >>> configure(cache_ttl_seconds=600)
        >>> get_config().cache_ttl_seconds
        600
    """
    global _config

    current_dict = get_config().model_dump()
    current_dict.update(kwargs)
    _config = ReconcilerConfig(**current_dict)

    return _config


def reset_config() -> None:
    """
    Reset configuration to defaults.

    Clears the cached config so the next get_config() call
    will reload from environment variables.
    """
    global _config
    _config = None


__all__ = [
    "ReconcilerConfig",
    "get_config",
    "configure",
    "reset_config",
]
