"""Resource registry, readiness waiting, hooks and dependency-ordered startup."""

from orchid_apphost.runtime.actions import (
    CommandFailedError,
    CommandProvisioner,
    CommandResult,
    command_start_action,
    run_command,
)
from orchid_apphost.runtime.errors import (
    ApphostError,
    ConfigurationError,
    CyclicDependencyError,
    DuplicateResourceError,
    InvalidResourceError,
    MissingDependencyError,
    OrchestrationError,
    RegistryFrozenError,
    ResourceNotFoundError,
    ShutdownError,
    UnknownDependencyError,
    UnknownResourceError,
)
from orchid_apphost.runtime.health import (
    ManagedResource,
    ProbeResult,
    ReadinessReport,
    ReadinessSummary,
    aggregate_probes,
)
from orchid_apphost.runtime.hooks import HookRunner, PostReadyHook
from orchid_apphost.runtime.manager import ResourceManager
from orchid_apphost.runtime.models import (
    FailureReason,
    HookFailure,
    ReadinessResult,
    ResourceOutcome,
    ResourceReadyEvent,
    ResourceState,
    StartReport,
)
from orchid_apphost.runtime.orchestrator import Orchestrator, OrchestratorConfig
from orchid_apphost.runtime.probes import health_check_probe, http_probe, tcp_probe
from orchid_apphost.runtime.readiness import ReadinessWaiter, ReadySignal
from orchid_apphost.runtime.registry import ResourceRegistry, ResourceSpec

__all__ = [
    "ApphostError",
    "CommandFailedError",
    "CommandProvisioner",
    "CommandResult",
    "ConfigurationError",
    "CyclicDependencyError",
    "DuplicateResourceError",
    "FailureReason",
    "HookFailure",
    "HookRunner",
    "InvalidResourceError",
    "ManagedResource",
    "MissingDependencyError",
    "OrchestrationError",
    "Orchestrator",
    "OrchestratorConfig",
    "PostReadyHook",
    "ProbeResult",
    "ReadinessReport",
    "ReadinessResult",
    "ReadinessSummary",
    "ReadinessWaiter",
    "ReadySignal",
    "RegistryFrozenError",
    "ResourceManager",
    "ResourceNotFoundError",
    "ResourceOutcome",
    "ResourceReadyEvent",
    "ResourceRegistry",
    "ResourceSpec",
    "ResourceState",
    "ShutdownError",
    "StartReport",
    "UnknownDependencyError",
    "UnknownResourceError",
    "aggregate_probes",
    "command_start_action",
    "health_check_probe",
    "http_probe",
    "run_command",
    "tcp_probe",
]
