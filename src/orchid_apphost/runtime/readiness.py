"""Readiness waiting over pulled probes and pushed ready signals."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from time import perf_counter
from typing import TYPE_CHECKING

from orchid_apphost.runtime._invoke import call_maybe_async
from orchid_apphost.runtime.errors import InvalidResourceError
from orchid_apphost.runtime.health import ProbeResult
from orchid_apphost.runtime.models import ReadinessResult

if TYPE_CHECKING:
    from orchid_apphost.config.models import OrchestratorSettings
    from orchid_apphost.runtime.registry import ReadinessProbe, ResourceSpec

logger = logging.getLogger(__name__)


class ReadySignal:
    """Push-style readiness source: whoever owns the resource calls ``set()`` once."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(slots=True)
class ReadinessWaiter:
    """Blocks the calling task until a resource reports ready or the timeout elapses.

    Probes are polled with exponential backoff between ``initial_interval_seconds``
    and ``max_interval_seconds``. A probe that raises, returns ``False`` or returns
    a not-ready ``ProbeResult`` counts as "not ready yet". When the resource also
    has a ``ReadySignal`` the sleep between polls is cut short by the signal.
    """

    default_timeout_seconds: float = 30.0
    initial_interval_seconds: float = 0.1
    max_interval_seconds: float = 2.0
    backoff_multiplier: float = 2.0
    _last_failures: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.default_timeout_seconds <= 0:
            raise ValueError("default_timeout_seconds must be > 0")
        if self.initial_interval_seconds <= 0:
            raise ValueError("initial_interval_seconds must be > 0")
        if self.max_interval_seconds < self.initial_interval_seconds:
            raise ValueError("max_interval_seconds must be >= initial_interval_seconds")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")

    @classmethod
    def from_settings(cls, settings: OrchestratorSettings) -> ReadinessWaiter:
        return cls(
            default_timeout_seconds=settings.readiness_timeout_seconds,
            initial_interval_seconds=settings.poll_initial_interval_seconds,
            max_interval_seconds=settings.poll_max_interval_seconds,
            backoff_multiplier=settings.poll_backoff_multiplier,
        )

    def last_failure(self, name: str) -> str | None:
        """Message of the most recent failed probe for ``name``, if any."""
        return self._last_failures.get(name)

    async def wait_ready(
        self,
        resource: ResourceSpec,
        timeout_seconds: float | None = None,
    ) -> ReadinessResult:
        """Wait until ``resource`` is ready, returning ``TIMED_OUT`` after the timeout."""
        timeout = self._resolve_timeout(resource, timeout_seconds)
        self._last_failures.pop(resource.name, None)

        if resource.probe is not None:
            return await self._poll(resource, resource.probe, timeout)
        if resource.signal is None:
            raise InvalidResourceError(
                f"Resource '{resource.name}' needs a readiness probe or a ready signal"
            )
        return await self._wait_for_signal(resource.name, resource.signal, timeout)

    def _resolve_timeout(self, resource: ResourceSpec, timeout_seconds: float | None) -> float:
        if timeout_seconds is not None:
            if timeout_seconds <= 0:
                raise ValueError("timeout_seconds must be > 0")
            return timeout_seconds
        if resource.readiness_timeout_seconds is not None:
            return resource.readiness_timeout_seconds
        return self.default_timeout_seconds

    async def _wait_for_signal(
        self, name: str, signal: ReadySignal, timeout: float
    ) -> ReadinessResult:
        try:
            await asyncio.wait_for(signal.wait(), timeout=timeout)
        except TimeoutError:
            self._last_failures[name] = "ready signal not received"
            return ReadinessResult.TIMED_OUT
        return ReadinessResult.READY

    async def _poll(
        self, resource: ResourceSpec, probe: ReadinessProbe, timeout: float
    ) -> ReadinessResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        interval = self.initial_interval_seconds
        attempt = 0

        while True:
            attempt += 1
            if resource.signal is not None and resource.signal.is_set():
                return ReadinessResult.READY

            remaining = deadline - loop.time()
            if remaining <= 0:
                return ReadinessResult.TIMED_OUT

            result = await self._probe_once(probe, remaining)
            if result.ready:
                logger.debug(
                    "Readiness probe succeeded",
                    extra={"resource": resource.name, "attempt": attempt},
                )
                return ReadinessResult.READY

            self._last_failures[resource.name] = result.message or "probe reported not ready"
            logger.debug(
                "Readiness probe not ready",
                extra={
                    "resource": resource.name,
                    "attempt": attempt,
                    "probe_message": result.message,
                },
            )

            remaining = deadline - loop.time()
            if remaining <= 0:
                return ReadinessResult.TIMED_OUT
            await self._sleep(resource, min(interval, remaining))
            interval = min(interval * self.backoff_multiplier, self.max_interval_seconds)

    async def _probe_once(self, probe: ReadinessProbe, remaining: float) -> ProbeResult:
        started = perf_counter()
        try:
            raw = await asyncio.wait_for(
                call_maybe_async(probe),
                timeout=remaining,
            )
        except TimeoutError:
            return ProbeResult(
                ready=False,
                latency_ms=(perf_counter() - started) * 1000,
                message="probe did not answer before the readiness deadline",
            )
        except Exception as exc:
            return ProbeResult(
                ready=False,
                latency_ms=(perf_counter() - started) * 1000,
                message=str(exc) or type(exc).__name__,
                details={"error_type": type(exc).__name__},
            )

        if isinstance(raw, ProbeResult):
            return raw
        return ProbeResult(ready=bool(raw), latency_ms=(perf_counter() - started) * 1000)

    async def _sleep(self, resource: ResourceSpec, delay: float) -> None:
        if resource.signal is None:
            await asyncio.sleep(delay)
            return
        with suppress(TimeoutError):
            await asyncio.wait_for(resource.signal.wait(), timeout=delay)
