"""Logging, metrics and tracing helpers."""

from orchid_apphost.observability.http import create_aiohttp_observability_middleware
from orchid_apphost.observability.logging import (
    JsonFormatter,
    LogContext,
    TextFormatter,
    bootstrap_logging,
    bootstrap_logging_from_settings,
    get_log_context,
    request_scope,
    resource_scope,
)
from orchid_apphost.observability.metrics import (
    MetricsRecorder,
    NoopMetricsRecorder,
    ObservedClient,
    PrometheusMetricsRecorder,
    configure_prometheus_metrics,
    get_metrics_recorder,
    prometheus_content_type,
    render_prometheus_metrics,
    set_metrics_recorder,
)
from orchid_apphost.observability.otel import invocation_span, start_span

__all__ = [
    "JsonFormatter",
    "LogContext",
    "MetricsRecorder",
    "NoopMetricsRecorder",
    "ObservedClient",
    "PrometheusMetricsRecorder",
    "TextFormatter",
    "bootstrap_logging",
    "bootstrap_logging_from_settings",
    "configure_prometheus_metrics",
    "create_aiohttp_observability_middleware",
    "get_log_context",
    "get_metrics_recorder",
    "invocation_span",
    "prometheus_content_type",
    "render_prometheus_metrics",
    "request_scope",
    "resource_scope",
    "set_metrics_recorder",
    "start_span",
]
