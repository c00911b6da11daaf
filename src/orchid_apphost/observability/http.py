"""aiohttp middleware binding request ids and emitting request spans."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from time import perf_counter
from typing import Any, TypeAlias
from uuid import uuid4

from aiohttp import web

from orchid_apphost.observability.logging import request_scope
from orchid_apphost.observability.metrics import get_metrics_recorder
from orchid_apphost.observability.otel import AttributeValue, set_span_attribute, start_span

AiohttpHandler: TypeAlias = Callable[[web.Request], Awaitable[web.StreamResponse]]

REQUEST_ID_HEADER = "x-request-id"


def create_aiohttp_observability_middleware(
    *,
    resource: str = "gateway",
    span_name: str = "http.server.request",
    request_id_response_header: str = REQUEST_ID_HEADER,
    attributes: Mapping[str, AttributeValue | None] | None = None,
) -> Callable[[web.Request, AiohttpHandler], Awaitable[web.StreamResponse]]:
    """Build middleware that binds a request id, records a span and a latency sample.

    An incoming ``x-request-id`` header is reused; otherwise a fresh id is
    generated and echoed back on the response.
    """

    @web.middleware
    async def middleware(request: web.Request, handler: AiohttpHandler) -> web.StreamResponse:
        request_id = _clean(request.headers.get(REQUEST_ID_HEADER)) or _new_request_id()
        route = _resolve_route(request)
        span_attributes: dict[str, AttributeValue | None] = dict(attributes or {})
        span_attributes["http.method"] = request.method
        span_attributes["http.route"] = route
        span_attributes["request.id"] = request_id

        request["request_id"] = request_id
        started = perf_counter()
        status: int | None = None
        with request_scope(request_id), start_span(span_name, attributes=span_attributes) as span:
            try:
                response = await handler(request)
                status = response.status
            except web.HTTPException as exc:
                status = exc.status
                raise
            except Exception:
                status = 500
                raise
            finally:
                set_span_attribute(span, "http.status_code", status)
                get_metrics_recorder().observe_operation(
                    resource=resource,
                    operation=route or "unmatched",
                    duration_seconds=perf_counter() - started,
                    success=status is None or status < 500,
                )

        if request_id_response_header not in response.headers:
            response.headers[request_id_response_header] = request_id
        return response

    return middleware


def _new_request_id() -> str:
    return uuid4().hex


def _resolve_route(request: Any) -> str | None:
    match_info = getattr(request, "match_info", None)
    route = getattr(match_info, "route", None)
    resource = getattr(route, "resource", None)
    for candidate in (
        getattr(resource, "canonical", None),
        getattr(getattr(request, "rel_url", None), "path", None),
    ):
        resolved = _clean(candidate)
        if resolved is not None:
            return resolved
    return None


def _clean(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
