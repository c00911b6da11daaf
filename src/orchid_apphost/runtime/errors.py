"""Custom exceptions for the application host runtime."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from orchid_apphost.runtime.models import ResourceOutcome


class ApphostError(Exception):
    """Base exception for this package."""


class MissingDependencyError(ApphostError):
    """Raised when an optional dependency is required but not installed."""


class ResourceNotFoundError(ApphostError):
    """Raised when requesting an unknown resource handle from the manager."""


class ConfigurationError(ApphostError):
    """Base class for errors in the declared resource graph."""


class DuplicateResourceError(ConfigurationError):
    """Raised when a resource name is declared twice."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Resource already declared: {name}")


class UnknownDependencyError(ConfigurationError):
    """Raised when a resource depends on a name that was never declared."""

    def __init__(self, resource: str, missing: Sequence[str]) -> None:
        self.resource = resource
        self.missing = tuple(missing)
        super().__init__(
            f"Resource '{resource}' depends on undeclared resources: {', '.join(self.missing)}"
        )


class CyclicDependencyError(ConfigurationError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.cycle)}")


class UnknownResourceError(ConfigurationError):
    """Raised when a hook is bound to a resource that was never declared."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown resource: {name}")


class RegistryFrozenError(ConfigurationError):
    """Raised when declaring into a registry after it was finalized."""


class InvalidResourceError(ConfigurationError):
    """Raised when a resource declaration is incomplete or malformed."""


class OrchestrationError(ApphostError):
    """Raised on demand when a start report contains failed or skipped resources."""

    def __init__(self, outcomes: Sequence[ResourceOutcome]) -> None:
        self.outcomes = tuple(outcomes)
        described = ", ".join(f"{outcome.name}={outcome.describe()}" for outcome in self.outcomes)
        super().__init__(f"Resources not ready: {described}")


class ShutdownError(ApphostError):
    """Raised when one or more resource handles fail to close during shutdown."""

    def __init__(self, errors: dict[str, Exception]) -> None:
        self.errors = errors
        names = ", ".join(errors.keys())
        super().__init__(f"Failed to close resources: {names}")
