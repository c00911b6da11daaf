"""Prometheus metrics primitives for the application host."""

from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager
from time import perf_counter
from typing import Any, Protocol

_LABEL_NORMALIZER = re.compile(r"[^a-zA-Z0-9_]+")

RESOURCE_STATES = ("declared", "starting", "ready", "failed", "skipped")


def _import_prometheus_client() -> Any:
    try:
        import prometheus_client
    except ImportError as exc:  # pragma: no cover - depends on optional extras
        from orchid_apphost.runtime.errors import MissingDependencyError

        raise MissingDependencyError(
            "Prometheus metrics require optional dependency 'prometheus-client'. "
            "Install with: pip install 'orchid-apphost[observability]'"
        ) from exc
    return prometheus_client


def _sanitize_label(value: str, *, default: str = "unknown") -> str:
    normalized = _LABEL_NORMALIZER.sub("_", value.strip().lower()).strip("_")
    return normalized or default


def _collector_or_create(registry: Any, name: str, factory: Any) -> Any:
    names_to_collectors = getattr(registry, "_names_to_collectors", None)
    if isinstance(names_to_collectors, dict):
        collector = names_to_collectors.get(name)
        if collector is not None:
            return collector
    return factory()


class MetricsRecorder(Protocol):
    """Observer contract for orchestration and resource metrics."""

    def observe_operation(
        self,
        *,
        resource: str,
        operation: str,
        duration_seconds: float,
        success: bool,
    ) -> None:
        """Record operation latency and throughput."""
        ...

    def observe_error(
        self,
        *,
        resource: str,
        operation: str,
        error_type: str,
    ) -> None:
        """Record operation error counters."""
        ...

    def observe_resource_state(self, *, resource: str, state: str) -> None:
        """Record the current lifecycle state of a declared resource."""
        ...


class NoopMetricsRecorder:
    """No-op recorder used when metrics are not configured."""

    def observe_operation(
        self,
        *,
        resource: str,
        operation: str,
        duration_seconds: float,
        success: bool,
    ) -> None:
        del resource, operation, duration_seconds, success

    def observe_error(
        self,
        *,
        resource: str,
        operation: str,
        error_type: str,
    ) -> None:
        del resource, operation, error_type

    def observe_resource_state(self, *, resource: str, state: str) -> None:
        del resource, state


class PrometheusMetricsRecorder:
    """Prometheus-backed recorder with ``apphost_*`` naming."""

    def __init__(
        self,
        *,
        registry: Any | None = None,
        prefix: str = "apphost",
    ) -> None:
        prometheus_client = _import_prometheus_client()
        self._registry = prometheus_client.REGISTRY if registry is None else registry
        self._prefix = _sanitize_label(prefix, default="apphost")
        self._latency = _collector_or_create(
            self._registry,
            f"{self._prefix}_operation_latency_seconds",
            lambda: prometheus_client.Histogram(
                f"{self._prefix}_operation_latency_seconds",
                "Resource operation latency in seconds.",
                labelnames=("resource", "operation", "status"),
                registry=self._registry,
                buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            ),
        )
        self._throughput = _collector_or_create(
            self._registry,
            f"{self._prefix}_operation_total",
            lambda: prometheus_client.Counter(
                f"{self._prefix}_operation_total",
                "Resource operation counter.",
                labelnames=("resource", "operation", "status"),
                registry=self._registry,
            ),
        )
        self._errors = _collector_or_create(
            self._registry,
            f"{self._prefix}_operation_errors_total",
            lambda: prometheus_client.Counter(
                f"{self._prefix}_operation_errors_total",
                "Resource operation errors.",
                labelnames=("resource", "operation", "error_type"),
                registry=self._registry,
            ),
        )
        self._state = _collector_or_create(
            self._registry,
            f"{self._prefix}_resource_state",
            lambda: prometheus_client.Gauge(
                f"{self._prefix}_resource_state",
                "1 for the current lifecycle state of each resource, 0 otherwise.",
                labelnames=("resource", "state"),
                registry=self._registry,
            ),
        )

    def observe_operation(
        self,
        *,
        resource: str,
        operation: str,
        duration_seconds: float,
        success: bool,
    ) -> None:
        labels = {
            "resource": _sanitize_label(resource),
            "operation": _sanitize_label(operation),
            "status": "success" if success else "error",
        }
        self._latency.labels(**labels).observe(max(0.0, duration_seconds))
        self._throughput.labels(**labels).inc()

    def observe_error(
        self,
        *,
        resource: str,
        operation: str,
        error_type: str,
    ) -> None:
        self._errors.labels(
            resource=_sanitize_label(resource),
            operation=_sanitize_label(operation),
            error_type=_sanitize_label(error_type),
        ).inc()

    def observe_resource_state(self, *, resource: str, state: str) -> None:
        resource_label = _sanitize_label(resource)
        current = _sanitize_label(state)
        for candidate in RESOURCE_STATES:
            self._state.labels(resource=resource_label, state=candidate).set(
                1.0 if candidate == current else 0.0
            )


_NOOP_RECORDER = NoopMetricsRecorder()
_DEFAULT_RECORDER: MetricsRecorder = _NOOP_RECORDER


def get_metrics_recorder() -> MetricsRecorder:
    """Return the process-level metrics recorder."""
    return _DEFAULT_RECORDER


def set_metrics_recorder(recorder: MetricsRecorder | None) -> MetricsRecorder:
    """Set process-level recorder. `None` switches back to no-op."""
    global _DEFAULT_RECORDER
    _DEFAULT_RECORDER = _NOOP_RECORDER if recorder is None else recorder
    return _DEFAULT_RECORDER


def configure_prometheus_metrics(
    *,
    registry: Any | None = None,
    prefix: str = "apphost",
    set_default: bool = True,
) -> PrometheusMetricsRecorder:
    """Build a Prometheus recorder and optionally set it as default."""
    recorder = PrometheusMetricsRecorder(registry=registry, prefix=prefix)
    if set_default:
        set_metrics_recorder(recorder)
    return recorder


def prometheus_content_type() -> str:
    """Return Prometheus exposition media type."""
    prometheus_client = _import_prometheus_client()
    return str(prometheus_client.CONTENT_TYPE_LATEST)


def render_prometheus_metrics(*, registry: Any | None = None) -> bytes:
    """Render current Prometheus metrics in exposition text format."""
    prometheus_client = _import_prometheus_client()
    resolved_registry = prometheus_client.REGISTRY if registry is None else registry
    return bytes(prometheus_client.generate_latest(resolved_registry))


class ObservedClient:
    """Mixin that reports a client's operations to the metrics recorder.

    Subclasses set ``_resource_name`` (a ``ClassVar[str]`` on slotted
    dataclasses) and may carry ``_metrics`` to override the process recorder.
    """

    _resource_name: str
    _metrics: MetricsRecorder | None

    def _metrics_recorder(self) -> MetricsRecorder:
        return get_metrics_recorder() if self._metrics is None else self._metrics

    @contextmanager
    def _observed(self, operation: str) -> Iterator[None]:
        """Time the block; an escaping exception is recorded and re-raised."""
        started = perf_counter()
        try:
            yield
        except Exception as exc:
            self._observe_error(operation, started, exc)
            raise
        self._observe_operation(operation, started, success=True)

    def _observe_operation(self, operation: str, started: float, *, success: bool) -> None:
        self._metrics_recorder().observe_operation(
            resource=self._resource_name,
            operation=operation,
            duration_seconds=perf_counter() - started,
            success=success,
        )

    def _observe_error(self, operation: str, started: float, exc: Exception) -> None:
        self._observe_operation(operation, started, success=False)
        self._metrics_recorder().observe_error(
            resource=self._resource_name,
            operation=operation,
            error_type=type(exc).__name__,
        )
