"""Configuration loader with hierarchical merge and validation."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from orchid_apphost.config.errors import (
    ConfigFileNotFoundError,
    ConfigValidationError,
)
from orchid_apphost.config.models import AppHostSettings
from orchid_apphost.config.placeholders import resolve_placeholders

DEFAULT_CONFIG_DIR = Path("config")
DEFAULT_BASE_FILE = "appsettings.json"
ENV_VAR_NAME = "APPHOST_ENV"
DEFAULT_ENV = "development"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries. Override values take precedence."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any]:
    """Load and parse a JSON configuration file.

    Raises:
        ConfigFileNotFoundError: If the file does not exist.
    """
    if not path.exists():
        raise ConfigFileNotFoundError(str(path))

    with path.open(encoding="utf-8") as f:
        return json.load(f)


def resolve_env(env: str | None = None) -> str:
    """Environment name from the argument, then ``APPHOST_ENV``, then ``development``."""
    if env is not None:
        return env
    return os.environ.get(ENV_VAR_NAME, DEFAULT_ENV)


def load_config(
    *,
    config_dir: Path | str | None = None,
    env: str | None = None,
    strict_placeholders: bool = True,
) -> AppHostSettings:
    """Load app host configuration with hierarchical merging.

    Configuration is loaded in the following order (later sources override earlier):
    1. config/appsettings.json (base configuration)
    2. config/appsettings.<environment>.json (environment-specific overrides)
    3. Environment variable placeholder resolution

    Args:
        config_dir: Directory containing configuration files. Defaults to "config".
        env: Environment name. Defaults to APPHOST_ENV or "development".
        strict_placeholders: If True, raise error for unresolved placeholders.

    Returns:
        Validated and frozen AppHostSettings instance.

    Raises:
        ConfigFileNotFoundError: If base configuration file is not found.
        ConfigValidationError: If configuration validation fails.
        PlaceholderResolutionError: If strict_placeholders=True and a placeholder
            cannot be resolved.
    """
    config_dir = DEFAULT_CONFIG_DIR if config_dir is None else Path(config_dir)
    env = resolve_env(env)

    config = load_json_file(config_dir / DEFAULT_BASE_FILE)

    env_path = config_dir / f"appsettings.{env}.json"
    if env_path.exists():
        config = deep_merge(config, load_json_file(env_path))

    config = resolve_placeholders(config, strict=strict_placeholders)

    try:
        return AppHostSettings.model_validate(config)
    except ValidationError as e:
        raise ConfigValidationError.from_validation_error(e, env=env) from e
