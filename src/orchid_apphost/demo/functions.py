"""The add function: sums two path parameters and echoes an outbound HTTP call."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from time import perf_counter
from typing import Any

import aiohttp

from orchid_apphost.config.models import AppHostSettings, FunctionSettings, TestConfiguration
from orchid_apphost.observability.logging import request_scope
from orchid_apphost.observability.metrics import MetricsRecorder, ObservedClient
from orchid_apphost.observability.otel import invocation_span, set_span_attribute
from orchid_apphost.runtime.health import ProbeResult

logger = logging.getLogger(__name__)

CONFIGURATION_MESSAGE = "Configuration loaded successfully via DI!"
_INTEGER = re.compile(r"^[+-]?\d+$")


class InvalidOperandError(ValueError):
    """Raised when a path parameter is missing or not an integer."""


@dataclass(frozen=True, slots=True)
class EchoResult:
    url: str
    status_code: int
    headers: str
    response_body: str

    def to_body(self) -> dict[str, Any]:
        return {
            "Url": self.url,
            "StatusCode": self.status_code,
            "Headers": self.headers,
            "ResponseBody": self.response_body,
        }


class AddFunction(ObservedClient):
    """Handler for HTTP API v2 proxy events routed to ``GET /add/{x}/{y}``.

    The response always carries status 200 once both operands parse; a failed
    echo call is reported inside the body with ``StatusCode`` -1.
    """

    _resource_name = "function"

    def __init__(
        self,
        *,
        settings: FunctionSettings,
        test_configuration: TestConfiguration,
        session: Any,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._settings = settings
        self._test_configuration = test_configuration
        self._session = session
        self._metrics = metrics
        logger.info(
            "Function configuration loaded",
            extra={
                "function": settings.name,
                "test_attribute": test_configuration.test_attribute,
                "config_environment": test_configuration.environment,
                "config_version": test_configuration.version,
            },
        )

    @classmethod
    def create(
        cls,
        settings: AppHostSettings,
        *,
        metrics: MetricsRecorder | None = None,
    ) -> AddFunction:
        """Build the function with its own client session; call from a running loop."""
        timeout = aiohttp.ClientTimeout(total=settings.function.request_timeout_seconds)
        return cls(
            settings=settings.function,
            test_configuration=settings.test_configuration,
            session=aiohttp.ClientSession(timeout=timeout),
            metrics=metrics,
        )

    @property
    def name(self) -> str:
        return self._settings.name

    async def handle(self, event: Mapping[str, Any]) -> dict[str, Any]:
        """Invoke the function for one proxy event and return the proxy response."""
        request_id = _request_id(event)
        started = perf_counter()
        with (
            request_scope(request_id),
            invocation_span(self.name, request_id=request_id, route=event.get("routeKey")) as span,
        ):
            try:
                x, y = _operands(event)
            except InvalidOperandError as exc:
                logger.warning("Rejected invocation", extra={"error": str(exc)})
                self._observe_error("invoke", started, exc)
                return _json_response(400, {"Error": str(exc)})

            total = x + y
            logger.info("Adding operands", extra={"x": x, "y": y, "sum": total})

            echo = await self._echo()
            set_span_attribute(span, "apphost.echo.status_code", echo.status_code)

        config = self._test_configuration
        body = {
            "Sum": total,
            "Calculation": {"X": x, "Y": y, "Result": total},
            "ConfigurationTest": {
                "TestAttribute": config.test_attribute,
                "Environment": config.environment,
                "Version": config.version,
                "Message": CONFIGURATION_MESSAGE,
            },
            "HttpRequest": echo.to_body(),
        }
        self._observe_operation("invoke", started, success=True)
        return _json_response(200, body)

    async def health_check(self) -> ProbeResult:
        closed = bool(getattr(self._session, "closed", False))
        return ProbeResult(
            ready=not closed,
            latency_ms=0.0,
            message="session closed" if closed else "ok",
        )

    async def close(self) -> None:
        if not getattr(self._session, "closed", False):
            await self._session.close()

    async def _echo(self) -> EchoResult:
        url = self._settings.echo_url
        logger.info("Sending echo request", extra={"url": url})
        try:
            async with self._session.get(url) as response:
                status = response.status
                headers = _collect_headers(response.headers)
                body = await response.text()
        except (aiohttp.ClientError, TimeoutError, OSError, ValueError) as exc:
            message = str(exc) or type(exc).__name__
            logger.error("Echo request failed", extra={"url": url, "error": message})
            return EchoResult(
                url=url,
                status_code=-1,
                headers="",
                response_body=f"Error: {message}",
            )

        logger.info(
            "Echo request completed",
            extra={"status_code": status, "body_length": len(body)},
        )
        return EchoResult(url=url, status_code=status, headers=headers, response_body=body)


def _operands(event: Mapping[str, Any]) -> tuple[int, int]:
    params = event.get("pathParameters") or {}
    return _parse_operand(params, "x"), _parse_operand(params, "y")


def _parse_operand(params: Mapping[str, Any], name: str) -> int:
    raw = params.get(name)
    if raw is None:
        raise InvalidOperandError(f"Missing path parameter '{name}'")
    text = str(raw).strip()
    if not _INTEGER.match(text):
        raise InvalidOperandError(f"Path parameter '{name}' must be an integer, got {raw!r}")
    return int(text)


def _request_id(event: Mapping[str, Any]) -> str | None:
    context = event.get("requestContext") or {}
    request_id = context.get("requestId")
    return None if request_id is None else str(request_id)


def _collect_headers(headers: Any) -> str:
    collected: dict[str, list[str]] = {}
    for key, value in headers.items():
        collected.setdefault(str(key), []).append(str(value))
    return json.dumps(collected)


def _json_response(status_code: int, body: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, indent=2),
    }
