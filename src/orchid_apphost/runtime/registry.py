"""Declared resources and their dependency edges."""

from __future__ import annotations

import heapq
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from orchid_apphost.runtime.errors import (
    CyclicDependencyError,
    DuplicateResourceError,
    InvalidResourceError,
    RegistryFrozenError,
    UnknownDependencyError,
)

if TYPE_CHECKING:
    from orchid_apphost.runtime.readiness import ReadySignal

logger = logging.getLogger(__name__)

# Start actions receive the ResourceSpec and may be sync or async; a non-None result is the handle.
StartAction = Callable[["ResourceSpec"], Any]
# Probes take no arguments and return bool or ProbeResult, optionally awaitable.
ReadinessProbe = Callable[[], Any]


@dataclass(slots=True, frozen=True)
class ResourceSpec:
    """A named unit of infrastructure with a start action and a readiness source.

    ``start`` begins provisioning and returns quickly; a non-``None`` return value
    becomes the resource handle. Readiness comes either from ``probe`` (pulled)
    or ``signal`` (pushed); at least one is required.
    """

    name: str
    depends_on: tuple[str, ...] = ()
    start: StartAction | None = None
    probe: ReadinessProbe | None = None
    signal: ReadySignal | None = None
    readiness_timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise InvalidResourceError("Resource name must be a non-empty string")
        if self.probe is None and self.signal is None:
            raise InvalidResourceError(
                f"Resource '{self.name}' needs a readiness probe or a ready signal"
            )
        if self.readiness_timeout_seconds is not None and self.readiness_timeout_seconds <= 0:
            raise InvalidResourceError(
                f"Resource '{self.name}' readiness_timeout_seconds must be > 0"
            )
        if len(set(self.depends_on)) != len(self.depends_on):
            raise InvalidResourceError(f"Resource '{self.name}' lists a dependency twice")


@dataclass(slots=True)
class ResourceRegistry:
    """Holds resource declarations; read-only once ``finalize`` succeeds.

    Example usage::

        registry = ResourceRegistry()
        registry.declare("cache", probe=cache_probe)
        registry.declare("function", depends_on=["cache"], probe=function_probe)
        order = registry.finalize()  # ["cache", "function"]
    """

    _resources: dict[str, ResourceSpec] = field(default_factory=dict)
    _order: tuple[str, ...] | None = None

    @property
    def finalized(self) -> bool:
        return self._order is not None

    def declare(
        self,
        name: str,
        *,
        depends_on: Iterable[str] = (),
        start: StartAction | None = None,
        probe: ReadinessProbe | None = None,
        signal: ReadySignal | None = None,
        readiness_timeout_seconds: float | None = None,
    ) -> ResourceSpec:
        """Declare a resource. Dependencies may be declared later, before ``finalize``."""
        return self.add(
            ResourceSpec(
                name=name,
                depends_on=tuple(depends_on),
                start=start,
                probe=probe,
                signal=signal,
                readiness_timeout_seconds=readiness_timeout_seconds,
            )
        )

    def add(self, spec: ResourceSpec) -> ResourceSpec:
        """Declare a pre-built ``ResourceSpec``."""
        if self.finalized:
            raise RegistryFrozenError(f"Cannot declare '{spec.name}': registry is finalized")
        if spec.name in self._resources:
            raise DuplicateResourceError(spec.name)
        self._resources[spec.name] = spec
        logger.debug(
            "Resource declared",
            extra={"resource": spec.name, "depends_on": list(spec.depends_on)},
        )
        return spec

    def has(self, name: str) -> bool:
        return name in self._resources

    def get(self, name: str) -> ResourceSpec:
        return self._resources[name]

    def names(self) -> list[str]:
        """Resource names in declaration order."""
        return list(self._resources)

    def dependents_of(self, name: str) -> list[str]:
        """Resources that list ``name`` as a direct dependency."""
        return [spec.name for spec in self._resources.values() if name in spec.depends_on]

    def finalize(self) -> list[str]:
        """Validate the graph and return a deterministic topological order.

        Ties are broken by declaration order. Calling it again returns the same
        order without re-validating.

        Raises:
            UnknownDependencyError: A dependency names an undeclared resource.
            CyclicDependencyError: The graph contains a cycle.
        """
        if self._order is not None:
            return list(self._order)

        for spec in self._resources.values():
            missing = [dep for dep in spec.depends_on if dep not in self._resources]
            if missing:
                raise UnknownDependencyError(spec.name, missing)

        cycle = self._find_cycle()
        if cycle is not None:
            raise CyclicDependencyError(cycle)

        self._order = tuple(self._topological_order())
        logger.debug("Resource graph finalized", extra={"order": list(self._order)})
        return list(self._order)

    def _find_cycle(self) -> list[str] | None:
        visiting: set[str] = set()
        done: set[str] = set()
        path: list[str] = []

        def visit(name: str) -> list[str] | None:
            visiting.add(name)
            path.append(name)
            for dep in self._resources[name].depends_on:
                if dep in visiting:
                    return [*path[path.index(dep) :], dep]
                if dep not in done:
                    found = visit(dep)
                    if found is not None:
                        return found
            path.pop()
            visiting.discard(name)
            done.add(name)
            return None

        for name in self._resources:
            if name not in done:
                found = visit(name)
                if found is not None:
                    return found
        return None

    def _topological_order(self) -> list[str]:
        position = {name: index for index, name in enumerate(self._resources)}
        remaining = {name: len(spec.depends_on) for name, spec in self._resources.items()}
        ready = [(position[name], name) for name, count in remaining.items() if count == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, name = heapq.heappop(ready)
            order.append(name)
            for dependent in self.dependents_of(name):
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, (position[dependent], dependent))
        return order
