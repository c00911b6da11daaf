"""Probe results and aggregated readiness reports."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Literal, Protocol, runtime_checkable


@dataclass(slots=True)
class ProbeResult:
    """Outcome of a single readiness probe against a resource."""

    ready: bool
    latency_ms: float
    message: str | None = None
    details: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        payload: dict[str, Any] = {
            "ready": self.ready,
            "latency_ms": max(0.0, float(self.latency_ms)),
        }
        if self.message is not None:
            payload["message"] = self.message
        if self.details:
            payload["details"] = dict(self.details)
        return payload


@dataclass(slots=True, frozen=True)
class ReadinessSummary:
    """Counters for an aggregated readiness report."""

    total: int
    ready: int
    not_ready: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "ready": self.ready,
            "not_ready": self.not_ready,
        }


@dataclass(slots=True)
class ReadinessReport:
    """Point-in-time readiness across every probed resource."""

    status: Literal["ok", "degraded", "down"]
    ready: bool
    latency_ms: float
    checks: dict[str, ProbeResult]
    summary: ReadinessSummary

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable payload suitable for `/health` endpoints."""
        return {
            "status": self.status,
            "ready": self.ready,
            "latency_ms": max(0.0, float(self.latency_ms)),
            "summary": self.summary.to_dict(),
            "checks": {name: result.to_dict() for name, result in self.checks.items()},
        }


ProbeCheck = Callable[[], Awaitable[ProbeResult]]


async def aggregate_probes(
    checks: Mapping[str, ProbeCheck],
    *,
    timeout_seconds: float | None = None,
) -> ReadinessReport:
    """Run probe checks concurrently and aggregate them into one report."""
    if timeout_seconds is not None and timeout_seconds <= 0:
        raise ValueError("timeout_seconds must be > 0")

    started = perf_counter()
    names = list(checks.keys())
    results = await asyncio.gather(
        *(
            _run_check(name=name, check=checks[name], timeout_seconds=timeout_seconds)
            for name in names
        )
    )
    statuses = dict(zip(names, results, strict=True))

    total = len(statuses)
    ready_count = sum(1 for result in statuses.values() if result.ready)
    all_ready = ready_count == total
    status: Literal["ok", "degraded", "down"]
    if all_ready:
        status = "ok"
    elif ready_count > 0:
        status = "degraded"
    else:
        status = "down"

    return ReadinessReport(
        status=status,
        ready=all_ready,
        latency_ms=(perf_counter() - started) * 1000,
        checks=statuses,
        summary=ReadinessSummary(total=total, ready=ready_count, not_ready=total - ready_count),
    )


async def _run_check(
    *,
    name: str,
    check: ProbeCheck,
    timeout_seconds: float | None,
) -> ProbeResult:
    started = perf_counter()
    try:
        awaitable = check()
        result = (
            await awaitable
            if timeout_seconds is None
            else await asyncio.wait_for(awaitable, timeout=timeout_seconds)
        )
        if not isinstance(result, ProbeResult):
            raise TypeError(
                f"probe for '{name}' returned {type(result).__name__}, expected ProbeResult"
            )
        return result
    except Exception as exc:
        return ProbeResult(
            ready=False,
            latency_ms=(perf_counter() - started) * 1000,
            message=str(exc),
            details={"error_type": type(exc).__name__},
        )


@runtime_checkable
class ManagedResource(Protocol):
    """Contract for resource handles with a health check and graceful close."""

    async def health_check(self) -> ProbeResult:
        """Return the current readiness of this resource."""
        ...

    async def close(self) -> None:
        """Release any held connections or processes."""
        ...
