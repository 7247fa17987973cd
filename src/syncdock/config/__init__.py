"""Application configuration helpers."""

from __future__ import annotations

from .connector import (
    CollectionSettings,
    ConnectorSettings,
    FilterRuleConfig,
    parse_properties,
    render_properties,
)
from .env import connector_env_overrides
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "CacheConfig",
    "CollectionSettings",
    "ConfigurationError",
    "ConnectorSettings",
    "DatabaseConfig",
    "FilterRuleConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "connector_env_overrides",
    "get_database_config",
    "get_storage_config",
    "parse_properties",
    "render_properties",
]
