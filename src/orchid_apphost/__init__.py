"""Dependency-ordered startup of local resources with readiness probing and post-ready hooks."""

from orchid_apphost.config import AppHostSettings, load_config
from orchid_apphost.runtime import (
    CyclicDependencyError,
    DuplicateResourceError,
    FailureReason,
    HookFailure,
    Orchestrator,
    OrchestratorConfig,
    ReadinessResult,
    ReadinessWaiter,
    ReadySignal,
    ResourceOutcome,
    ResourceReadyEvent,
    ResourceRegistry,
    ResourceSpec,
    ResourceState,
    StartReport,
    UnknownDependencyError,
    UnknownResourceError,
)

__version__ = "0.1.0"

__all__ = [
    "AppHostSettings",
    "CyclicDependencyError",
    "DuplicateResourceError",
    "FailureReason",
    "HookFailure",
    "Orchestrator",
    "OrchestratorConfig",
    "ReadinessResult",
    "ReadinessWaiter",
    "ReadySignal",
    "ResourceOutcome",
    "ResourceReadyEvent",
    "ResourceRegistry",
    "ResourceSpec",
    "ResourceState",
    "StartReport",
    "UnknownDependencyError",
    "UnknownResourceError",
    "__version__",
    "load_config",
]
