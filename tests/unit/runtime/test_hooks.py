"""Tests for the post-ready hook runner."""

from __future__ import annotations

import pytest

from orchid_apphost.runtime.errors import UnknownResourceError
from orchid_apphost.runtime.hooks import HookRunner
from orchid_apphost.runtime.models import ResourceReadyEvent
from orchid_apphost.runtime.registry import ResourceRegistry


def _runner(*names: str) -> HookRunner:
    registry = ResourceRegistry()
    for name in names:
        registry.declare(name, probe=lambda: True)
    registry.finalize()
    return HookRunner(registry)


class TestHookRunner:
    def test_on_ready_unknown_resource_raises(self) -> None:
        runner = _runner("cache")

        with pytest.raises(UnknownResourceError) as exc_info:
            runner.on_ready("store", lambda event: None)

        assert exc_info.value.name == "store"

    async def test_hooks_run_in_registration_order(self) -> None:
        runner = _runner("store")
        calls: list[str] = []

        async def create_table(event: ResourceReadyEvent) -> None:
            calls.append(f"create:{event.name}")

        def put_item(event: ResourceReadyEvent) -> None:
            calls.append(f"put:{event.name}")

        runner.on_ready("store", create_table)
        runner.on_ready("store", put_item)

        failures = await runner.run(ResourceReadyEvent(name="store"))

        assert failures == []
        assert calls == ["create:store", "put:store"]

    async def test_hooks_fire_at_most_once(self) -> None:
        runner = _runner("store")
        calls: list[str] = []
        runner.on_ready("store", lambda event: calls.append(event.name))

        await runner.run(ResourceReadyEvent(name="store"))
        await runner.run(ResourceReadyEvent(name="store"))

        assert calls == ["store"]

    async def test_failure_is_reported_and_later_hooks_still_run(self) -> None:
        runner = _runner("store")
        calls: list[str] = []

        def broken(event: ResourceReadyEvent) -> None:
            raise RuntimeError("table exists")

        runner.on_ready("store", broken)
        runner.on_ready("store", lambda event: calls.append("second"))

        failures = await runner.run(ResourceReadyEvent(name="store"))

        assert calls == ["second"]
        assert len(failures) == 1
        assert failures[0].resource == "store"
        assert failures[0].error_type == "RuntimeError"
        assert failures[0].message == "table exists"
        assert "broken" in failures[0].hook

    async def test_hooks_receive_the_handle(self) -> None:
        runner = _runner("cache")
        seen: list[object] = []
        handle = object()
        runner.on_ready("cache", lambda event: seen.append(event.handle))

        await runner.run(ResourceReadyEvent(name="cache", handle=handle))

        assert seen == [handle]

    async def test_run_without_hooks_is_a_no_op(self) -> None:
        assert await _runner("cache").run(ResourceReadyEvent(name="cache")) == []

    def test_discard_drops_pending_hooks(self) -> None:
        runner = _runner("cache", "store")
        runner.on_ready("cache", lambda event: None)
        runner.on_ready("store", lambda event: None)
        runner.on_ready("store", lambda event: None)

        assert runner.discard() == 3
        assert runner.hooks_for("store") == []
