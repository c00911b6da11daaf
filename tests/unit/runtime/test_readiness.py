"""Tests for the readiness waiter."""

from __future__ import annotations

import asyncio
import time
from time import perf_counter
from types import SimpleNamespace

import pytest

from orchid_apphost.config.models import OrchestratorSettings
from orchid_apphost.runtime.errors import InvalidResourceError
from orchid_apphost.runtime.health import ProbeResult
from orchid_apphost.runtime.models import ReadinessResult
from orchid_apphost.runtime.readiness import ReadinessWaiter, ReadySignal
from orchid_apphost.runtime.registry import ResourceSpec


class CountingProbe:
    """Reports ready after ``ready_after`` failed calls; ``None`` means never."""

    def __init__(self, ready_after: int | None = 0) -> None:
        self.ready_after = ready_after
        self.calls = 0

    def __call__(self) -> bool:
        self.calls += 1
        return self.ready_after is not None and self.calls > self.ready_after


def _fast_waiter(**overrides: float) -> ReadinessWaiter:
    settings: dict[str, float] = {
        "default_timeout_seconds": 1.0,
        "initial_interval_seconds": 0.01,
        "max_interval_seconds": 0.02,
    }
    settings.update(overrides)
    return ReadinessWaiter(**settings)


class TestReadinessWaiter:
    async def test_ready_on_first_successful_probe(self) -> None:
        probe = CountingProbe(ready_after=0)

        result = await _fast_waiter().wait_ready(ResourceSpec(name="cache", probe=probe))

        assert result is ReadinessResult.READY
        assert probe.calls == 1

    async def test_retries_until_probe_succeeds(self) -> None:
        probe = CountingProbe(ready_after=3)

        result = await _fast_waiter().wait_ready(ResourceSpec(name="cache", probe=probe))

        assert result is ReadinessResult.READY
        assert probe.calls == 4

    async def test_async_probe_returning_probe_result(self) -> None:
        calls = 0

        async def probe() -> ProbeResult:
            nonlocal calls
            calls += 1
            return ProbeResult(ready=calls >= 2, latency_ms=0.0, message="warming up")

        result = await _fast_waiter().wait_ready(ResourceSpec(name="store", probe=probe))

        assert result is ReadinessResult.READY
        assert calls == 2

    async def test_times_out_within_tolerance(self) -> None:
        waiter = _fast_waiter()
        probe = CountingProbe(ready_after=None)

        started = perf_counter()
        result = await waiter.wait_ready(ResourceSpec(name="cache", probe=probe), 0.2)
        elapsed = perf_counter() - started

        assert result is ReadinessResult.TIMED_OUT
        assert 0.15 <= elapsed < 0.6
        assert probe.calls > 1
        assert waiter.last_failure("cache") == "probe reported not ready"

    async def test_raising_probe_counts_as_not_ready(self) -> None:
        waiter = _fast_waiter()

        def probe() -> bool:
            raise ConnectionRefusedError("connection refused")

        result = await waiter.wait_ready(ResourceSpec(name="cache", probe=probe), 0.1)

        assert result is ReadinessResult.TIMED_OUT
        assert waiter.last_failure("cache") == "connection refused"

    async def test_hanging_probe_is_bounded_by_timeout(self) -> None:
        async def probe() -> bool:
            await asyncio.sleep(10)
            return True

        started = perf_counter()
        result = await _fast_waiter().wait_ready(ResourceSpec(name="slow", probe=probe), 0.1)

        assert result is ReadinessResult.TIMED_OUT
        assert perf_counter() - started < 1.0

    async def test_blocking_sync_check_is_bounded_by_timeout(self) -> None:
        def check() -> bool:
            time.sleep(1.5)
            return True

        spec = ResourceSpec(name="slow", probe=check, readiness_timeout_seconds=0.2)

        started = perf_counter()
        result = await _fast_waiter().wait_ready(spec)

        assert result is ReadinessResult.TIMED_OUT
        assert perf_counter() - started < 0.7

    async def test_blocking_sync_check_does_not_stall_the_loop(self) -> None:
        ticks = 0

        async def ticker() -> None:
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        def check() -> bool:
            time.sleep(0.3)
            return True

        task = asyncio.create_task(ticker())
        try:
            result = await _fast_waiter().wait_ready(ResourceSpec(name="slow", probe=check))
        finally:
            task.cancel()

        assert result is ReadinessResult.READY
        assert ticks >= 10

    async def test_resource_timeout_used_when_no_argument(self) -> None:
        spec = ResourceSpec(
            name="cache",
            probe=CountingProbe(ready_after=None),
            readiness_timeout_seconds=0.05,
        )

        started = perf_counter()
        result = await _fast_waiter(default_timeout_seconds=5.0).wait_ready(spec)

        assert result is ReadinessResult.TIMED_OUT
        assert perf_counter() - started < 1.0

    async def test_resource_without_check_or_signal_rejected(self) -> None:
        spec = SimpleNamespace(
            name="cache", probe=None, signal=None, readiness_timeout_seconds=None
        )

        with pytest.raises(InvalidResourceError):
            await _fast_waiter().wait_ready(spec)  # type: ignore[arg-type]

    async def test_signal_only_resource(self) -> None:
        signal = ReadySignal()
        spec = ResourceSpec(name="function", signal=signal)

        asyncio.get_running_loop().call_later(0.02, signal.set)
        result = await _fast_waiter().wait_ready(spec)

        assert result is ReadinessResult.READY

    async def test_signal_never_set_times_out(self) -> None:
        waiter = _fast_waiter()
        spec = ResourceSpec(name="function", signal=ReadySignal())

        result = await waiter.wait_ready(spec, 0.05)

        assert result is ReadinessResult.TIMED_OUT
        assert waiter.last_failure("function") == "ready signal not received"

    async def test_signal_cuts_probe_backoff_short(self) -> None:
        signal = ReadySignal()
        spec = ResourceSpec(name="gateway", probe=CountingProbe(ready_after=None), signal=signal)
        waiter = _fast_waiter(initial_interval_seconds=5.0, max_interval_seconds=5.0)

        asyncio.get_running_loop().call_later(0.05, signal.set)
        started = perf_counter()
        result = await waiter.wait_ready(spec, 10.0)

        assert result is ReadinessResult.READY
        assert perf_counter() - started < 1.0

    async def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError):
            await _fast_waiter().wait_ready(ResourceSpec(name="cache", probe=CountingProbe()), 0)

    def test_validates_intervals(self) -> None:
        with pytest.raises(ValueError):
            ReadinessWaiter(initial_interval_seconds=1.0, max_interval_seconds=0.5)
        with pytest.raises(ValueError):
            ReadinessWaiter(backoff_multiplier=0.5)

    def test_from_settings(self) -> None:
        waiter = ReadinessWaiter.from_settings(
            OrchestratorSettings(
                readiness_timeout_seconds=12,
                poll_initial_interval_seconds=0.5,
                poll_max_interval_seconds=4,
                poll_backoff_multiplier=3,
            )
        )

        assert waiter.default_timeout_seconds == 12
        assert waiter.initial_interval_seconds == 0.5
        assert waiter.max_interval_seconds == 4
        assert waiter.backoff_multiplier == 3
