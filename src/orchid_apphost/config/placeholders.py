"""``${ENV_VAR}`` and ``${ENV_VAR:-default}`` placeholder resolution."""

from __future__ import annotations

import os
import re
from typing import Any

from orchid_apphost.config.errors import PlaceholderResolutionError

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def resolve_placeholders(
    data: dict[str, Any],
    *,
    strict: bool = True,
    _path: str = "",
) -> dict[str, Any]:
    """Resolve placeholders in every string value of ``data``.

    Args:
        data: Configuration dictionary to process.
        strict: If True, raise for placeholders with neither a value nor a default.
        _path: Internal path tracker for error messages.

    Returns:
        New dictionary with placeholders resolved.

    Raises:
        PlaceholderResolutionError: If strict=True and a placeholder cannot be resolved.
    """
    result: dict[str, Any] = {}

    for key, value in data.items():
        current_path = f"{_path}.{key}" if _path else key
        result[key] = _resolve_any(value, current_path, strict)

    return result


def _resolve_any(value: Any, path: str, strict: bool) -> Any:
    if isinstance(value, dict):
        return resolve_placeholders(value, strict=strict, _path=path)
    if isinstance(value, list):
        return [_resolve_any(item, f"{path}[{i}]", strict) for i, item in enumerate(value)]
    return _resolve_value(value, path, strict)


def _resolve_value(value: Any, path: str, strict: bool) -> Any:
    """Resolve placeholders in a single value."""
    if not isinstance(value, str):
        return value

    def replace_match(match: re.Match[str]) -> str:
        env_var, default = match.group(1), match.group(2)
        env_value = os.environ.get(env_var)

        if env_value is not None:
            return env_value
        if default is not None:
            return default
        if strict:
            raise PlaceholderResolutionError(match.group(0), path)
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(replace_match, value)
