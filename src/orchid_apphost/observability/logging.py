"""Structured logging bootstrap and per-task log context."""

from __future__ import annotations

import contextvars
import json
import logging
import os
import random
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TextIO

if TYPE_CHECKING:
    from orchid_apphost.config.models import AppHostSettings

_REQUEST_ID_CTX: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "apphost_request_id",
    default=None,
)
_RESOURCE_CTX: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "apphost_resource",
    default=None,
)

_STANDARD_RECORD_KEYS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


@dataclass(frozen=True, slots=True)
class LogContext:
    """Values bound to the current task and stamped onto every record."""

    request_id: str | None = None
    resource: str | None = None
    trace_id: str | None = None
    span_id: str | None = None


class SamplingFilter(logging.Filter):
    """Sampling filter for low-severity logs."""

    def __init__(self, sampling: float) -> None:
        super().__init__()
        self._sampling = sampling

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True
        return random.random() < self._sampling


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with service and task context fields."""

    def __init__(self, *, service: str, env: str) -> None:
        super().__init__()
        self._service = service
        self._env = env

    def format(self, record: logging.LogRecord) -> str:
        context = get_log_context()
        payload: dict[str, Any] = {
            "timestamp": _format_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
            "env": self._env,
            "resource": context.resource,
            "request_id": context.request_id,
            "trace_id": context.trace_id,
            "span_id": context.span_id,
        }

        payload.update(_extract_extra_fields(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=True)


class TextFormatter(logging.Formatter):
    """Plain text formatter carrying the same context as the JSON one."""

    def __init__(self, *, service: str, env: str) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")
        self._service = service
        self._env = env

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = get_log_context()
        resource = getattr(record, "resource", None) or context.resource
        return (
            f"{base} "
            f"service={self._service} env={self._env} "
            f"resource={resource or '-'} "
            f"request_id={context.request_id or '-'}"
        )


def get_log_context() -> LogContext:
    """Read context values from contextvars and the active OpenTelemetry span."""
    trace_id, span_id = _current_otel_trace_context()
    return LogContext(
        request_id=_REQUEST_ID_CTX.get(),
        resource=_RESOURCE_CTX.get(),
        trace_id=trace_id,
        span_id=span_id,
    )


@contextmanager
def resource_scope(name: str) -> Iterator[None]:
    """Bind the resource being orchestrated for the current task."""
    token = _RESOURCE_CTX.set(name)
    try:
        yield
    finally:
        _RESOURCE_CTX.reset(token)


@contextmanager
def request_scope(request_id: str | None) -> Iterator[None]:
    """Bind a function invocation's request id for the current task."""
    token = _REQUEST_ID_CTX.set(_clean_optional_string(request_id))
    try:
        yield
    finally:
        _REQUEST_ID_CTX.reset(token)


def bootstrap_logging(
    *,
    service: str,
    env: str | None = None,
    level: str = "INFO",
    log_format: str = "json",
    sampling: float | None = None,
    logger: logging.Logger | None = None,
    stream: TextIO | None = None,
    force: bool = True,
) -> logging.Logger:
    """Configure a logger with standard formatting and context fields."""
    resolved_env = env if env is not None else os.getenv("APPHOST_ENV", "development")
    target_logger = logger or logging.getLogger()

    if force:
        for handler in list(target_logger.handlers):
            target_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(_build_formatter(log_format, service=service, env=resolved_env))

    if sampling is not None and sampling < 1.0:
        handler.addFilter(SamplingFilter(sampling))

    target_logger.addHandler(handler)
    target_logger.setLevel(level.upper())
    if target_logger is not logging.getLogger():
        target_logger.propagate = False
    return target_logger


def bootstrap_logging_from_settings(
    settings: AppHostSettings,
    *,
    env: str | None = None,
    logger: logging.Logger | None = None,
    stream: TextIO | None = None,
    force: bool = True,
) -> logging.Logger:
    """Bootstrap logging using values from typed app host settings."""
    return bootstrap_logging(
        service=settings.service.name,
        env=env,
        level=settings.logging.level,
        log_format=settings.logging.format,
        sampling=settings.logging.sampling,
        logger=logger,
        stream=stream,
        force=force,
    )


def _build_formatter(log_format: str, *, service: str, env: str) -> logging.Formatter:
    if log_format == "text":
        return TextFormatter(service=service, env=env)
    return JsonFormatter(service=service, env=env)


def _clean_optional_string(value: object | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if text == "":
        return None
    return text


def _current_otel_trace_context() -> tuple[str | None, str | None]:
    try:
        from opentelemetry import trace as otel_trace
    except ImportError:
        return None, None

    span_context = otel_trace.get_current_span().get_span_context()
    if span_context is None or not getattr(span_context, "is_valid", False):
        return None, None

    return f"{span_context.trace_id:032x}", f"{span_context.span_id:016x}"


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    extras: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_RECORD_KEYS or key.startswith("_"):
            continue
        if key in {"service", "env", "trace_id", "span_id", "request_id"}:
            continue
        extras[key] = value
    return extras


def _format_timestamp(created: float) -> str:
    timestamp = datetime.fromtimestamp(created, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
