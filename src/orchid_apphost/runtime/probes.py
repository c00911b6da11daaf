"""Ready-made readiness probes for HTTP endpoints, TCP ports and managed handles."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from time import perf_counter
from typing import Any

import aiohttp

from orchid_apphost.runtime.health import ManagedResource, ProbeResult


def http_probe(
    url: str,
    *,
    timeout_seconds: float = 2.0,
    ready_below_status: int = 500,
) -> Callable[[], Awaitable[ProbeResult]]:
    """Probe that reports ready when ``GET url`` answers with a status below 500."""

    async def probe() -> ProbeResult:
        started = perf_counter()
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    status = response.status
        except (aiohttp.ClientError, TimeoutError) as exc:
            return ProbeResult(
                ready=False,
                latency_ms=(perf_counter() - started) * 1000,
                message=str(exc) or type(exc).__name__,
                details={"url": url, "error_type": type(exc).__name__},
            )
        return ProbeResult(
            ready=status < ready_below_status,
            latency_ms=(perf_counter() - started) * 1000,
            message=f"HTTP {status}",
            details={"url": url},
        )

    return probe


def tcp_probe(
    host: str,
    port: int,
    *,
    timeout_seconds: float = 2.0,
) -> Callable[[], Awaitable[ProbeResult]]:
    """Probe that reports ready once a TCP connection to ``host:port`` succeeds."""

    async def probe() -> ProbeResult:
        started = perf_counter()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=timeout_seconds,
            )
        except (OSError, TimeoutError) as exc:
            return ProbeResult(
                ready=False,
                latency_ms=(perf_counter() - started) * 1000,
                message=str(exc) or type(exc).__name__,
                details={"address": f"{host}:{port}", "error_type": type(exc).__name__},
            )
        writer.close()
        await writer.wait_closed()
        return ProbeResult(
            ready=True,
            latency_ms=(perf_counter() - started) * 1000,
            message="accepting connections",
            details={"address": f"{host}:{port}"},
        )

    return probe


def health_check_probe(target: ManagedResource | Callable[[], Any]) -> Callable[[], Any]:
    """Adapt a handle's ``health_check`` into a readiness probe.

    ``target`` may be the handle itself or a zero-argument callable returning
    the handle, for handles that only exist once the start action has run.
    """

    async def probe() -> ProbeResult:
        handle = target if hasattr(target, "health_check") else target()
        if handle is None:
            return ProbeResult(ready=False, latency_ms=0.0, message="resource handle not created")
        return await handle.health_check()

    return probe
