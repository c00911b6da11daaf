"""Call helpers for caller-supplied callables that may be sync or async."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any


async def call_maybe_async(func: Callable[..., Any], *args: Any) -> Any:
    """Await coroutine functions; run plain callables in a worker thread.

    Sync callables must not touch the event loop since they run off it. A sync
    callable that returns an awaitable still has that awaitable awaited here.
    """
    if inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
        getattr(func, "__call__", None)
    ):
        return await func(*args)
    maybe_awaitable = await asyncio.to_thread(func, *args)
    if hasattr(maybe_awaitable, "__await__"):
        return await maybe_awaitable
    return maybe_awaitable


def callable_name(func: Callable[..., Any]) -> str:
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)
