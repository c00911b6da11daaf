"""Dependency-ordered startup of declared resources."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from time import perf_counter

from orchid_apphost.observability.logging import resource_scope
from orchid_apphost.observability.metrics import MetricsRecorder, get_metrics_recorder
from orchid_apphost.observability.otel import start_span
from orchid_apphost.runtime._invoke import call_maybe_async
from orchid_apphost.runtime.health import (
    ProbeCheck,
    ProbeResult,
    ReadinessReport,
    aggregate_probes,
)
from orchid_apphost.runtime.hooks import HookAction, HookRunner
from orchid_apphost.runtime.manager import ResourceManager
from orchid_apphost.runtime.models import (
    FailureReason,
    HookFailure,
    ReadinessResult,
    ResourceOutcome,
    ResourceReadyEvent,
    ResourceState,
    StartReport,
    can_transition,
)
from orchid_apphost.runtime.readiness import ReadinessWaiter, ReadySignal
from orchid_apphost.runtime.registry import (
    ReadinessProbe,
    ResourceRegistry,
    ResourceSpec,
    StartAction,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OrchestratorConfig:
    """Everything an ``Orchestrator`` runs: resources and their post-ready hooks.

    Example usage::

        config = OrchestratorConfig()
        config.add_resource("cache", start=start_cache, probe=cache.ping)
        config.add_resource("store", start=start_store, probe=store_probe)
        config.add_resource("function", depends_on=["cache", "store"], probe=fn_probe)
        config.on_ready("store", seed_store)

        report = await Orchestrator(config).start()
    """

    resources: list[ResourceSpec] = field(default_factory=list)
    hooks: list[tuple[str, HookAction]] = field(default_factory=list)

    def add_resource(
        self,
        name: str,
        *,
        depends_on: Iterable[str] = (),
        start: StartAction | None = None,
        probe: ReadinessProbe | None = None,
        signal: ReadySignal | None = None,
        readiness_timeout_seconds: float | None = None,
    ) -> ResourceSpec:
        spec = ResourceSpec(
            name=name,
            depends_on=tuple(depends_on),
            start=start,
            probe=probe,
            signal=signal,
            readiness_timeout_seconds=readiness_timeout_seconds,
        )
        self.resources.append(spec)
        return spec

    def on_ready(self, resource_name: str, action: HookAction) -> None:
        self.hooks.append((resource_name, action))


class Orchestrator:
    """Starts resources concurrently, gated only by their dependency edges.

    Construction validates the whole graph (duplicates, unknown dependencies,
    cycles, hooks on unknown resources) before anything starts. ``start`` never
    raises for an individual resource failure; it returns a ``StartReport``.

    State changes go through ``_transition``, which never awaits, so each
    compare-and-set is atomic on the event loop. The only other writer is the
    reset of not-ready resources at the beginning of a repeated ``start``.
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        *,
        waiter: ReadinessWaiter | None = None,
        manager: ResourceManager | None = None,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._registry = ResourceRegistry()
        for spec in config.resources:
            self._registry.add(spec)
        self._order = self._registry.finalize()

        self._hooks = HookRunner(self._registry)
        for resource_name, action in config.hooks:
            self._hooks.on_ready(resource_name, action)

        self._waiter = waiter or ReadinessWaiter()
        self._manager = manager or ResourceManager()
        self._metrics = metrics
        self._states: dict[str, ResourceState] = {
            name: ResourceState.DECLARED for name in self._order
        }
        self._outcomes: dict[str, ResourceOutcome] = {}
        self._hook_failures: list[HookFailure] = []
        self._done: dict[str, asyncio.Event] = {}
        self._started_at: dict[str, float] = {}
        self._running = False
        self._run_started = 0.0
        self._duration_ms: float | None = None

    @property
    def order(self) -> list[str]:
        """Deterministic topological order used to create the start tasks."""
        return list(self._order)

    @property
    def registry(self) -> ResourceRegistry:
        return self._registry

    @property
    def hooks(self) -> HookRunner:
        return self._hooks

    @property
    def manager(self) -> ResourceManager:
        return self._manager

    def state(self, name: str) -> ResourceState:
        return self._states[name]

    def states(self) -> dict[str, ResourceState]:
        return dict(self._states)

    async def start(self, *, deadline_seconds: float | None = None) -> StartReport:
        """Start every resource that is not ready yet and return the outcome map.

        With ``deadline_seconds`` the run is cut off at the deadline: resources
        still starting become ``FAILED(CANCELLED)`` and resources that had not
        started become ``SKIPPED``. The same happens when the awaiting task is
        cancelled, after which ``report()`` returns the partial outcome map.

        Calling ``start`` again retries failed and skipped resources; resources
        already ``READY`` keep their state and their hooks do not fire again.
        """
        if self._running:
            raise RuntimeError("Orchestrator.start() is already running")
        if deadline_seconds is not None and deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be > 0")
        self._running = True
        try:
            return await self._start(deadline_seconds)
        finally:
            self._running = False

    async def _start(self, deadline_seconds: float | None) -> StartReport:
        pending_names = [name for name in self._order if not self._is_ready(name)]
        await self._reset(pending_names)
        self._run_started = perf_counter()
        self._duration_ms = None

        logger.info("Starting resources", extra={"order": pending_names})
        self._done = {name: asyncio.Event() for name in self._order}
        for name in self._order:
            if self._is_ready(name):
                self._done[name].set()
        tasks = [
            asyncio.create_task(self._run_resource(name), name=f"apphost:{name}")
            for name in pending_names
        ]

        try:
            if deadline_seconds is None:
                await asyncio.gather(*tasks)
            elif tasks:
                _, pending = await asyncio.wait(tasks, timeout=deadline_seconds)
                if pending:
                    logger.warning(
                        "Start deadline elapsed",
                        extra={"deadline_seconds": deadline_seconds, "pending": len(pending)},
                    )
                    await _cancel_and_wait(pending)
        except asyncio.CancelledError:
            await _cancel_and_wait(tasks)
            self._settle_unfinished()
            raise

        self._settle_unfinished()
        report = self.report()
        self._log_summary(report)
        return report

    def report(self) -> StartReport:
        """Build a ``StartReport`` from the outcomes recorded so far."""
        duration_ms = self._duration_ms
        if duration_ms is None and self._run_started:
            duration_ms = (perf_counter() - self._run_started) * 1000
        outcomes = {name: self._outcomes[name] for name in self._order if name in self._outcomes}
        return StartReport(
            outcomes=outcomes,
            hook_failures=list(self._hook_failures),
            duration_ms=duration_ms or 0.0,
        )

    async def readiness_report(self, *, timeout_seconds: float | None = None) -> ReadinessReport:
        """Probe every ready resource again and aggregate the results."""
        checks: dict[str, ProbeCheck] = {}
        for name in self._order:
            spec = self._registry.get(name)
            if self._states[name] is ResourceState.READY and spec.probe is not None:
                checks[name] = _probe_check(spec.probe)
        return await aggregate_probes(checks, timeout_seconds=timeout_seconds)

    async def shutdown(self) -> None:
        """Drop pending hooks and close every registered resource handle."""
        dropped = self._hooks.discard()
        if dropped:
            logger.info(
                "Discarded hooks for resources that never became ready",
                extra={"hooks": dropped},
            )
        await self._manager.close_all()

    async def _run_resource(self, name: str) -> None:
        with resource_scope(name):
            try:
                await self._run(self._registry.get(name))
            finally:
                self._done[name].set()

    async def _run(self, spec: ResourceSpec) -> None:
        for dep in spec.depends_on:
            await self._done[dep].wait()

        blocked = self._not_ready(spec.depends_on)
        if blocked:
            self._skip(spec.name, blocked)
            return

        if not self._transition(spec.name, ResourceState.STARTING):
            return
        self._started_at[spec.name] = perf_counter()
        logger.info("Resource starting")

        handle = None
        if spec.start is not None:
            span_attributes = {"apphost.resource": spec.name}
            try:
                with start_span("apphost.resource.start", attributes=span_attributes):
                    handle = await call_maybe_async(spec.start, spec)
            except Exception as exc:
                self._fail(spec.name, FailureReason.START_FAILED, _describe(exc))
                return
        if handle is not None:
            self._manager.register(spec.name, handle)

        try:
            result = await self._waiter.wait_ready(spec)
        except Exception as exc:
            self._fail(spec.name, FailureReason.START_FAILED, _describe(exc))
            return
        if result is ReadinessResult.TIMED_OUT:
            self._fail(
                spec.name,
                FailureReason.TIMED_OUT,
                self._waiter.last_failure(spec.name) or "readiness probe never succeeded",
            )
            return

        if not self._transition(spec.name, ResourceState.READY):
            return
        duration_ms = self._elapsed_ms(spec.name)
        self._outcomes[spec.name] = ResourceOutcome(
            name=spec.name,
            state=ResourceState.READY,
            duration_ms=duration_ms,
        )
        self._observe("start", spec.name, success=True)
        logger.info("Resource ready", extra={"duration_ms": duration_ms})

        failures = await self._hooks.run(ResourceReadyEvent(name=spec.name, handle=handle))
        self._hook_failures.extend(failures)
        for failure in failures:
            self._metrics_recorder().observe_error(
                resource=spec.name,
                operation="hook",
                error_type=failure.error_type,
            )

    def _is_ready(self, name: str) -> bool:
        return self._states[name] is ResourceState.READY

    async def _reset(self, names: Iterable[str]) -> None:
        for name in names:
            if self._states[name] is ResourceState.DECLARED:
                continue
            self._states[name] = ResourceState.DECLARED
            self._outcomes.pop(name, None)
            self._started_at.pop(name, None)
            self._metrics_recorder().observe_resource_state(
                resource=name,
                state=ResourceState.DECLARED.value,
            )
            if self._manager.has(name):
                try:
                    await self._manager.release(name)
                except Exception:
                    logger.warning(
                        "Stale resource handle failed to close",
                        exc_info=True,
                        extra={"resource": name},
                    )
            logger.info("Retrying resource", extra={"resource": name})

    def _not_ready(self, names: Iterable[str]) -> tuple[str, ...]:
        return tuple(name for name in names if self._states[name] is not ResourceState.READY)

    def _transition(self, name: str, target: ResourceState) -> bool:
        current = self._states[name]
        if not can_transition(current, target):
            logger.warning(
                "Rejected resource state transition",
                extra={"resource": name, "from_state": current.value, "to_state": target.value},
            )
            return False
        self._states[name] = target
        self._metrics_recorder().observe_resource_state(resource=name, state=target.value)
        return True

    def _fail(self, name: str, reason: FailureReason, error: str) -> None:
        if not self._transition(name, ResourceState.FAILED):
            return
        self._outcomes[name] = ResourceOutcome(
            name=name,
            state=ResourceState.FAILED,
            reason=reason,
            error=error,
            duration_ms=self._elapsed_ms(name),
        )
        self._observe("start", name, success=False)
        self._metrics_recorder().observe_error(
            resource=name,
            operation="start",
            error_type=reason.value,
        )
        logger.warning(
            "Resource failed",
            extra={"resource": name, "reason": reason.value, "error": error},
        )

    def _skip(self, name: str, blocked_by: tuple[str, ...]) -> None:
        if not self._transition(name, ResourceState.SKIPPED):
            return
        self._outcomes[name] = ResourceOutcome(
            name=name,
            state=ResourceState.SKIPPED,
            skipped_because=blocked_by,
        )
        logger.warning(
            "Resource skipped due to dependency failure",
            extra={"resource": name, "blocked_by": list(blocked_by)},
        )

    def _settle_unfinished(self) -> None:
        for name in self._order:
            if name in self._outcomes:
                continue
            state = self._states[name]
            if state is ResourceState.STARTING:
                self._fail(name, FailureReason.CANCELLED, "start cancelled before readiness")
            elif state is ResourceState.DECLARED:
                self._skip(name, self._not_ready(self._registry.get(name).depends_on))
        self._duration_ms = (perf_counter() - self._run_started) * 1000

    def _elapsed_ms(self, name: str) -> float:
        started = self._started_at.get(name)
        return 0.0 if started is None else (perf_counter() - started) * 1000

    def _observe(self, operation: str, name: str, *, success: bool) -> None:
        started = self._started_at.get(name, perf_counter())
        self._metrics_recorder().observe_operation(
            resource=name,
            operation=operation,
            duration_seconds=perf_counter() - started,
            success=success,
        )

    def _metrics_recorder(self) -> MetricsRecorder:
        return get_metrics_recorder() if self._metrics is None else self._metrics

    def _log_summary(self, report: StartReport) -> None:
        counts = {state.value: 0 for state in ResourceState if state.is_terminal}
        for outcome in report.outcomes.values():
            counts[outcome.state.value] += 1
        log = logger.info if report.ok else logger.warning
        log(
            "Resource startup finished",
            extra={
                "ok": report.ok,
                "duration_ms": report.duration_ms,
                "hook_failures": len(report.hook_failures),
                **counts,
            },
        )


def _describe(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


async def _cancel_and_wait(tasks: Iterable[asyncio.Task[None]]) -> None:
    pending = list(tasks)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)


def _probe_check(probe: ReadinessProbe) -> ProbeCheck:
    async def _run() -> ProbeResult:
        started = perf_counter()
        raw = await call_maybe_async(probe)
        if isinstance(raw, ProbeResult):
            return raw
        return ProbeResult(ready=bool(raw), latency_ms=(perf_counter() - started) * 1000)

    return _run
