"""HTTP API gateway emulator that turns requests into proxy events for the function."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol
from uuid import uuid4

from aiohttp import web

from orchid_apphost.config.models import GatewaySettings
from orchid_apphost.observability.http import create_aiohttp_observability_middleware
from orchid_apphost.observability.metrics import (
    prometheus_content_type,
    render_prometheus_metrics,
)
from orchid_apphost.runtime.errors import MissingDependencyError
from orchid_apphost.runtime.health import ProbeResult, ReadinessReport
from orchid_apphost.runtime.probes import http_probe

logger = logging.getLogger(__name__)

ReadinessProvider = Callable[[], Awaitable[ReadinessReport]]

_FUNCTION_KEY = web.AppKey("function", object)
_READINESS_KEY = web.AppKey("readiness", object)
_ROUTE_KEY_KEY = web.AppKey("route_key", str)


class ProxyFunction(Protocol):
    async def handle(self, event: dict[str, Any]) -> dict[str, Any]:
        ...


def build_proxy_event(request: web.Request, route_key: str, request_id: str) -> dict[str, Any]:
    """HTTP API (payload v2.0) proxy event for ``request``."""
    query = dict(request.query) or None
    return {
        "version": "2.0",
        "routeKey": route_key,
        "rawPath": request.path,
        "rawQueryString": request.query_string,
        "headers": {key.lower(): value for key, value in request.headers.items()},
        "queryStringParameters": query,
        "pathParameters": dict(request.match_info),
        "requestContext": {
            "requestId": request_id,
            "http": {
                "method": request.method,
                "path": request.path,
                "sourceIp": request.remote or "",
            },
        },
        "isBase64Encoded": False,
    }


async def _invoke(request: web.Request) -> web.Response:
    function: ProxyFunction = request.app[_FUNCTION_KEY]  # type: ignore[assignment]
    request_id = request.get("request_id") or uuid4().hex
    event = build_proxy_event(request, request.app[_ROUTE_KEY_KEY], request_id)
    result = await function.handle(event)
    headers = dict(result.get("headers") or {})
    content_type = headers.pop("Content-Type", None)
    return web.Response(
        status=int(result.get("statusCode", 200)),
        text=str(result.get("body", "")),
        headers=headers,
        content_type=content_type.split(";")[0] if content_type else None,
    )


async def _health(_: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def _ready(request: web.Request) -> web.Response:
    provider: ReadinessProvider | None = request.app[_READINESS_KEY]  # type: ignore[assignment]
    if provider is None:
        return web.json_response({"status": "ok", "ready": True})
    report = await provider()
    return web.json_response(report.to_dict(), status=200 if report.ready else 503)


async def _metrics(_: web.Request) -> web.Response:
    try:
        payload = render_prometheus_metrics()
        content_type = prometheus_content_type()
    except MissingDependencyError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    response = web.Response(body=payload)
    response.headers["Content-Type"] = content_type
    return response


def build_gateway_app(
    function: ProxyFunction,
    *,
    route: str = "/add/{x}/{y}",
    readiness: ReadinessProvider | None = None,
) -> web.Application:
    """aiohttp app exposing ``GET route``, ``/health``, ``/health/ready`` and ``/metrics``."""
    app = web.Application(middlewares=[create_aiohttp_observability_middleware()])
    app[_FUNCTION_KEY] = function
    app[_READINESS_KEY] = readiness
    app[_ROUTE_KEY_KEY] = f"GET {route}"
    app.router.add_get(route, _invoke)
    app.router.add_get("/health", _health)
    app.router.add_get("/health/ready", _ready)
    app.router.add_get("/metrics", _metrics)
    return app


class GatewayEmulator:
    """Serves the gateway app on a TCP site until closed."""

    def __init__(
        self,
        function: ProxyFunction,
        settings: GatewaySettings,
        *,
        readiness: ReadinessProvider | None = None,
    ) -> None:
        self._settings = settings
        self._app = build_gateway_app(function, route=settings.route, readiness=readiness)
        self._runner: web.AppRunner | None = None
        self._port: int | None = None

    @property
    def app(self) -> web.Application:
        return self._app

    @property
    def base_url(self) -> str:
        if self._port is None:
            raise RuntimeError("Gateway is not serving")
        return f"http://{self._settings.host}:{self._port}"

    async def start(self) -> GatewayEmulator:
        runner = web.AppRunner(self._app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._settings.host, self._settings.port)
        await site.start()
        self._runner = runner
        self._port = _bound_port(runner) or self._settings.port
        logger.info("Gateway listening", extra={"url": self.base_url})
        return self

    async def health_check(self) -> ProbeResult:
        if self._runner is None:
            return ProbeResult(ready=False, latency_ms=0.0, message="not serving")
        return await http_probe(f"{self.base_url}/health")()

    async def close(self) -> None:
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        self._port = None
        await runner.cleanup()


def _bound_port(runner: web.AppRunner) -> int | None:
    for address in runner.addresses:
        if isinstance(address, tuple) and len(address) >= 2:
            return int(address[1])
    return None
