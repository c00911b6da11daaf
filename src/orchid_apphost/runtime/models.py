"""Value types shared by the registry, waiter, hook runner and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from orchid_apphost.runtime.errors import OrchestrationError


class ResourceState(str, Enum):
    """Lifecycle state of a declared resource.

    Transitions are monotonic: ``DECLARED -> STARTING -> READY | FAILED`` and
    ``DECLARED -> SKIPPED`` when a dependency never became ready.
    """

    DECLARED = "declared"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({ResourceState.READY, ResourceState.FAILED, ResourceState.SKIPPED})

_ALLOWED_TRANSITIONS: dict[ResourceState, frozenset[ResourceState]] = {
    ResourceState.DECLARED: frozenset({ResourceState.STARTING, ResourceState.SKIPPED}),
    ResourceState.STARTING: frozenset({ResourceState.READY, ResourceState.FAILED}),
    ResourceState.READY: frozenset(),
    ResourceState.FAILED: frozenset(),
    ResourceState.SKIPPED: frozenset(),
}


def can_transition(current: ResourceState, target: ResourceState) -> bool:
    """Return whether ``current -> target`` is a legal lifecycle transition."""
    return target in _ALLOWED_TRANSITIONS[current]


class FailureReason(str, Enum):
    """Why a resource ended up ``FAILED``."""

    START_FAILED = "start_failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class ReadinessResult(str, Enum):
    """Result of a single ``wait_ready`` call."""

    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass(slots=True, frozen=True)
class ResourceOutcome:
    """Terminal outcome of one resource after ``Orchestrator.start``."""

    name: str
    state: ResourceState
    reason: FailureReason | None = None
    error: str | None = None
    skipped_because: tuple[str, ...] = ()
    duration_ms: float = 0.0

    @property
    def ready(self) -> bool:
        return self.state is ResourceState.READY

    def describe(self) -> str:
        if self.state is ResourceState.FAILED and self.reason is not None:
            return f"failed({self.reason.value})"
        if self.state is ResourceState.SKIPPED and self.skipped_because:
            return f"skipped(after {', '.join(self.skipped_because)})"
        return self.state.value

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "state": self.state.value,
            "duration_ms": max(0.0, float(self.duration_ms)),
        }
        if self.reason is not None:
            payload["reason"] = self.reason.value
        if self.error is not None:
            payload["error"] = self.error
        if self.skipped_because:
            payload["skipped_because"] = list(self.skipped_because)
        return payload


@dataclass(slots=True, frozen=True)
class HookFailure:
    """A post-ready hook that raised; reported, never escalated."""

    resource: str
    hook: str
    error_type: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "resource": self.resource,
            "hook": self.hook,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass(slots=True, frozen=True)
class ResourceReadyEvent:
    """Payload handed to post-ready hooks."""

    name: str
    handle: Any | None = None


@dataclass(slots=True)
class StartReport:
    """Per-resource outcome map returned by ``Orchestrator.start``."""

    outcomes: dict[str, ResourceOutcome]
    hook_failures: list[HookFailure] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        """True only when every declared resource reached ``READY``."""
        return all(outcome.ready for outcome in self.outcomes.values())

    @property
    def not_ready(self) -> list[ResourceOutcome]:
        return [outcome for outcome in self.outcomes.values() if not outcome.ready]

    def state_of(self, name: str) -> ResourceState:
        return self.outcomes[name].state

    def raise_for_failures(self) -> None:
        """Raise ``OrchestrationError`` when any resource failed or was skipped."""
        not_ready = self.not_ready
        if not_ready:
            raise OrchestrationError(not_ready)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "ok": self.ok,
            "duration_ms": max(0.0, float(self.duration_ms)),
            "resources": {name: outcome.to_dict() for name, outcome in self.outcomes.items()},
            "hook_failures": [failure.to_dict() for failure in self.hook_failures],
        }
