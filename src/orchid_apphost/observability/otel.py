"""OpenTelemetry span helpers for resource starts and function invocations.

Only the OpenTelemetry API is used; exporters and providers are configured by
the hosting process. Every helper degrades to a no-op when the API is missing.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

AttributeValue = str | bool | int | float

_TRACER_NAME = "orchid_apphost"


@contextmanager
def start_span(
    span_name: str,
    *,
    attributes: Mapping[str, AttributeValue | None] | None = None,
) -> Iterator[Any | None]:
    """Start a span when OpenTelemetry API is available; otherwise no-op."""
    trace_module = _import_otel_api_trace_module()
    if trace_module is None:
        yield None
        return

    tracer = trace_module.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span(span_name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        finally:
            current_exception = sys.exc_info()[1]
            if isinstance(current_exception, Exception):
                _mark_span_error(span, current_exception)


@contextmanager
def invocation_span(
    function_name: str,
    *,
    request_id: str | None = None,
    route: str | None = None,
    attributes: Mapping[str, AttributeValue | None] | None = None,
) -> Iterator[Any | None]:
    """Instrument one function invocation with FaaS semantic attributes."""
    span_attributes: dict[str, AttributeValue | None] = dict(attributes or {})
    span_attributes["faas.name"] = function_name
    span_attributes["faas.trigger"] = "http"
    span_attributes["faas.invocation_id"] = request_id
    span_attributes["http.route"] = route
    with start_span(f"{function_name} invoke", attributes=span_attributes) as span:
        yield span


def set_span_attribute(span: Any | None, key: str, value: AttributeValue | None) -> None:
    if span is None or value is None:
        return
    span.set_attribute(key, value)


def _import_otel_api_trace_module() -> Any | None:
    try:
        from opentelemetry import trace
    except ImportError:
        return None
    return trace


def _mark_span_error(span: Any | None, exc: Exception) -> None:
    if span is None:
        return

    span.record_exception(exc)
    try:
        from opentelemetry import trace as otel_trace
    except ImportError:
        return
    span.set_status(otel_trace.Status(otel_trace.StatusCode.ERROR, str(exc)))
