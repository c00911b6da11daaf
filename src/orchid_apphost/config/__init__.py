"""Configuration loading and validation module."""

from orchid_apphost.config.errors import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigValidationError,
    PlaceholderResolutionError,
)
from orchid_apphost.config.loader import deep_merge, load_config, resolve_env
from orchid_apphost.config.models import (
    AccountsStoreSettings,
    AppHostSettings,
    CacheSettings,
    FunctionSettings,
    GatewaySettings,
    LoggingSettings,
    ObservabilitySettings,
    OrchestratorSettings,
    ResourceSettings,
    ServiceSettings,
    TestConfiguration,
)

__all__ = [
    "AccountsStoreSettings",
    "AppHostSettings",
    "CacheSettings",
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigValidationError",
    "FunctionSettings",
    "GatewaySettings",
    "LoggingSettings",
    "ObservabilitySettings",
    "OrchestratorSettings",
    "PlaceholderResolutionError",
    "ResourceSettings",
    "ServiceSettings",
    "TestConfiguration",
    "deep_merge",
    "load_config",
    "resolve_env",
]
