"""Registry of live resource handles returned by start actions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, cast

from orchid_apphost.observability.metrics import MetricsRecorder, get_metrics_recorder
from orchid_apphost.runtime.errors import ResourceNotFoundError, ShutdownError
from orchid_apphost.runtime.health import ProbeCheck, ReadinessReport, aggregate_probes

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResourceManager:
    """Stores resource handles and closes them gracefully.

    Handles are closed in reverse registration order, so a resource is closed
    before the resources it was started after.

    Example usage::

        manager = ResourceManager()
        manager.register("cache", redis_resource)

        cache = manager.get("cache")
        report = await manager.readiness_report(timeout_seconds=2.0)

        await manager.close_all()
    """

    _handles: dict[str, Any] = field(default_factory=dict)
    _metrics: MetricsRecorder | None = None

    def register(self, name: str, handle: Any) -> None:
        """Register a handle by resource name."""
        self._handles[name] = handle

    def has(self, name: str) -> bool:
        return name in self._handles

    def get(self, name: str) -> Any:
        """Retrieve a registered handle by resource name."""
        if name not in self._handles:
            raise ResourceNotFoundError(f"Resource handle not found: {name}")
        return self._handles[name]

    def names(self) -> list[str]:
        return list(self._handles)

    async def release(self, name: str) -> None:
        """Close and forget a single handle; unknown names are ignored."""
        handle = self._handles.pop(name, None)
        close = getattr(handle, "close", None)
        if close is None:
            return
        maybe_awaitable = close()
        if hasattr(maybe_awaitable, "__await__"):
            await maybe_awaitable

    async def readiness_report(self, *, timeout_seconds: float | None = None) -> ReadinessReport:
        """Re-probe every handle that exposes ``health_check``."""
        return await aggregate_probes(self._health_checks(), timeout_seconds=timeout_seconds)

    async def close_all(self) -> None:
        """Close all handles, accumulating errors.

        Handles that close cleanly are removed; handles that fail stay registered
        so shutdown can be retried. Raises ``ShutdownError`` listing the failures.
        """
        started = perf_counter()
        errors: dict[str, Exception] = {}
        for name in reversed(list(self._handles)):
            handle = self._handles[name]
            try:
                close = getattr(handle, "close", None)
                if close is not None:
                    maybe_awaitable = close()
                    if hasattr(maybe_awaitable, "__await__"):
                        await maybe_awaitable
            except Exception as exc:
                logger.warning(
                    "Resource handle failed to close",
                    extra={"resource": name, "error_type": type(exc).__name__},
                )
                errors[name] = exc
            else:
                del self._handles[name]

        self._metrics_recorder().observe_operation(
            resource="apphost",
            operation="shutdown",
            duration_seconds=perf_counter() - started,
            success=not errors,
        )
        if errors:
            self._metrics_recorder().observe_error(
                resource="apphost",
                operation="shutdown",
                error_type=ShutdownError.__name__,
            )
            raise ShutdownError(errors)

    def _metrics_recorder(self) -> MetricsRecorder:
        return get_metrics_recorder() if self._metrics is None else self._metrics

    def _health_checks(self) -> dict[str, ProbeCheck]:
        checks: dict[str, ProbeCheck] = {}
        for name, handle in self._handles.items():
            health_check = getattr(handle, "health_check", None)
            if callable(health_check):
                checks[name] = cast(ProbeCheck, health_check)
        return checks
