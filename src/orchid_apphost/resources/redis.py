"""Redis cache resource backed by the redis-py asyncio client."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from time import perf_counter
from typing import Any, ClassVar

from orchid_apphost.config.models import CacheSettings
from orchid_apphost.observability.metrics import MetricsRecorder, ObservedClient
from orchid_apphost.runtime.errors import MissingDependencyError
from orchid_apphost.runtime.health import ProbeResult


def _import_redis_asyncio() -> Any:
    try:
        import redis.asyncio as redis_asyncio
    except ImportError as exc:  # pragma: no cover - exercised when extras are absent
        raise MissingDependencyError(
            "Redis cache requires optional dependency 'redis'. "
            "Install with: pip install 'orchid-apphost[redis]'"
        ) from exc
    return redis_asyncio


def _normalize_prefix(prefix: str) -> str:
    if not prefix:
        return ""
    return prefix if prefix.endswith(":") else f"{prefix}:"


@dataclass(slots=True)
class RedisResource(ObservedClient):
    """Managed Redis cache with common key/value helpers."""

    _resource_name: ClassVar[str] = "redis"

    _client: Any
    key_prefix: str = ""
    _metrics: MetricsRecorder | None = None
    _closed: bool = False
    _teardown: Callable[[], Awaitable[None]] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: CacheSettings,
        *,
        metrics: MetricsRecorder | None = None,
        teardown: Callable[[], Awaitable[None]] | None = None,
    ) -> RedisResource:
        """Build the client without connecting; the first command opens the pool."""
        redis_asyncio = _import_redis_asyncio()
        client = redis_asyncio.from_url(
            settings.url.get_secret_value(),
            decode_responses=True,
            socket_timeout=settings.socket_timeout_seconds,
            socket_connect_timeout=settings.connect_timeout_seconds,
        )
        return cls(
            _client=client,
            key_prefix=_normalize_prefix(settings.key_prefix),
            _metrics=metrics,
            _teardown=teardown,
        )

    @classmethod
    async def create(cls, settings: CacheSettings) -> RedisResource:
        """Create a client and verify the server answers a ping."""
        resource = cls.from_settings(settings)
        await resource.ping()
        return resource

    @property
    def client(self) -> Any:
        """Expose underlying redis client for advanced usage."""
        return self._client

    @property
    def is_connected(self) -> bool:
        return not self._closed

    def _scoped_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def ping(self) -> bool:
        """Run a ping command against Redis."""
        with self._observed("ping"):
            return bool(await self._client.ping())

    async def get(self, key: str) -> str | None:
        with self._observed("get"):
            return await self._client.get(self._scoped_key(key))

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> bool:
        """Set a cache value with optional TTL."""
        with self._observed("set"):
            return bool(await self._client.set(self._scoped_key(key), value, ex=ttl_seconds))

    async def delete(self, key: str) -> int:
        """Delete a key from cache and return removed count."""
        with self._observed("delete"):
            return int(await self._client.delete(self._scoped_key(key)))

    async def health_check(self) -> ProbeResult:
        """Ready when the server answers a ping."""
        start = perf_counter()
        try:
            await self.ping()
        except Exception as exc:
            return ProbeResult(
                ready=False,
                latency_ms=(perf_counter() - start) * 1000,
                message=str(exc) or type(exc).__name__,
                details={"error_type": exc.__class__.__name__},
            )
        return ProbeResult(
            ready=True,
            latency_ms=(perf_counter() - start) * 1000,
            message="ok",
        )

    async def close(self) -> None:
        """Close Redis client and free underlying connections.

        ``teardown`` (e.g. stopping the container the cache runs in) runs after
        the client is closed, even when closing the client fails.
        """
        close = getattr(self._client, "aclose", None) or getattr(self._client, "close", None)
        try:
            with self._observed("close"):
                if callable(close):
                    maybe_awaitable = close()
                    if hasattr(maybe_awaitable, "__await__"):
                        await maybe_awaitable
        finally:
            self._closed = True
            teardown, self._teardown = self._teardown, None
            if teardown is not None:
                await teardown()
