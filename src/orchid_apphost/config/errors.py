"""Errors raised while loading ``appsettings`` files for the app host."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from orchid_apphost.runtime.errors import ApphostError

if TYPE_CHECKING:
    from pydantic import ValidationError


class ConfigError(ApphostError):
    """Base exception for configuration errors."""


class ConfigFileNotFoundError(ConfigError):
    """The base ``appsettings.json`` is missing from the config directory."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Configuration file not found: {path} (pass --config-dir to point at it)"
        )


class ConfigValidationError(ConfigError):
    """One or more settings failed validation.

    ``errors`` holds one ``{"loc": "resources -> cache -> url", "msg": ...}``
    entry per problem so the command line can print all of them at once.
    """

    def __init__(self, errors: list[dict[str, str]], *, env: str | None = None) -> None:
        self.errors = errors
        self.env = env
        scope = f" for environment '{env}'" if env else ""
        lines = [
            f"  - {err.get('loc') or '<root>'}: {err.get('msg', 'invalid value')}"
            for err in errors
        ]
        super().__init__(f"Invalid app host settings{scope}:\n" + "\n".join(lines))

    @classmethod
    def from_validation_error(
        cls, exc: ValidationError, *, env: str | None = None
    ) -> ConfigValidationError:
        return cls([_describe(error) for error in exc.errors()], env=env)


class PlaceholderResolutionError(ConfigError):
    """A ``${VAR}`` placeholder has no value in the environment and no default."""

    def __init__(self, placeholder: str, key_path: str) -> None:
        self.placeholder = placeholder
        self.key_path = key_path
        self.env_var = placeholder.removeprefix("${").removesuffix("}").split(":-", 1)[0]
        super().__init__(
            f"Cannot resolve placeholder '{placeholder}' at '{key_path}': "
            f"set {self.env_var} or give it a default as ${{{self.env_var}:-value}}"
        )


def _describe(error: Any) -> dict[str, str]:
    return {
        "loc": " -> ".join(str(part) for part in error["loc"]),
        "msg": error["msg"],
    }
