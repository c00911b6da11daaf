"""Tests for the demo app host wiring and command line."""

from __future__ import annotations

import json
import sys
from collections.abc import Awaitable, Callable
from io import StringIO
from pathlib import Path
from typing import Any

import aiohttp
import pytest

import orchid_apphost.demo.host as host
from orchid_apphost.config.models import AppHostSettings
from orchid_apphost.demo.host import (
    ACCOUNTS,
    CACHE,
    FUNCTION,
    GATEWAY,
    build_orchestrator,
    build_parser,
    main,
    run_apphost,
)
from orchid_apphost.runtime.health import ProbeResult
from orchid_apphost.runtime.models import ResourceState


class FakeCache:
    def __init__(self) -> None:
        self.closed = False
        self.teardown: Callable[[], Awaitable[None]] | None = None

    async def health_check(self) -> ProbeResult:
        return ProbeResult(ready=True, latency_ms=0.0, message="ok")

    async def close(self) -> None:
        self.closed = True
        if self.teardown is not None:
            await self.teardown()


class FakeAccountsStore:
    def __init__(self, *, ready: bool = True) -> None:
        self.ready = ready
        self.items: dict[str, dict[str, dict[str, Any]]] = {}
        self.closed = False
        self.teardown: Callable[[], Awaitable[None]] | None = None

    async def create_table(self, table: str, *, hash_key: str) -> bool:
        created = table not in self.items
        self.items.setdefault(table, {})
        return created

    async def put_item(self, table: str, item: dict[str, Any]) -> None:
        self.items[table][item["Id"]] = dict(item)

    async def health_check(self) -> ProbeResult:
        return ProbeResult(ready=self.ready, latency_ms=0.0, message="ok" if self.ready else "down")

    async def close(self) -> None:
        self.closed = True
        if self.teardown is not None:
            await self.teardown()


class FakeFactory:
    def __init__(self, handle: Any) -> None:
        self.handle = handle

    def from_settings(self, settings: Any, *, metrics: Any = None, teardown: Any = None) -> Any:
        self.handle.teardown = teardown
        return self.handle


def _settings(cache: dict[str, Any] | None = None, **accounts: Any) -> AppHostSettings:
    return AppHostSettings.model_validate(
        {
            "orchestrator": {
                "readiness_timeout_seconds": 2,
                "poll_initial_interval_seconds": 0.01,
                "poll_max_interval_seconds": 0.05,
            },
            "resources": {"gateway": {"port": 0}, "cache": cache or {}, "accounts": accounts},
            "function": {"echo_url": "http://127.0.0.1:9/unused"},
        }
    )


class FakeContainer:
    """Start/stop scripts that behave like ``docker run --name`` and ``docker rm -f``."""

    def __init__(self, directory: Path) -> None:
        self.marker = directory / "container"
        self.log = directory / "commands.log"

    @property
    def running(self) -> bool:
        return self.marker.exists()

    @property
    def history(self) -> list[str]:
        return self.log.read_text().split() if self.log.exists() else []

    def commands(self) -> dict[str, list[str]]:
        header = (
            "import os, sys\n"
            f"marker, log = {str(self.marker)!r}, {str(self.log)!r}\n"
        )
        start = (
            header + "open(log, 'a').write('start\\n')\n"
            "if os.path.exists(marker):\n"
            "    sys.exit('Conflict. The container name is already in use')\n"
            "open(marker, 'w').close()\n"
        )
        stop = (
            header + "open(log, 'a').write('stop\\n')\n"
            "if not os.path.exists(marker):\n"
            "    sys.exit('No such container')\n"
            "os.remove(marker)\n"
        )
        return {
            "start_command": [sys.executable, "-c", start],
            "stop_command": [sys.executable, "-c", stop],
        }


@pytest.fixture
def fakes(monkeypatch: pytest.MonkeyPatch) -> tuple[FakeCache, FakeAccountsStore]:
    cache = FakeCache()
    store = FakeAccountsStore()
    monkeypatch.setattr(host, "RedisResource", FakeFactory(cache))
    monkeypatch.setattr(host, "DynamoDbDocumentStore", FakeFactory(store))
    return cache, store


class TestBuildOrchestrator:
    def test_declares_resources_and_edges(self) -> None:
        orchestrator = build_orchestrator(AppHostSettings())

        assert orchestrator.order == [CACHE, ACCOUNTS, FUNCTION, GATEWAY]
        assert orchestrator.registry.get(FUNCTION).depends_on == (CACHE, ACCOUNTS)
        assert orchestrator.registry.get(GATEWAY).depends_on == (FUNCTION,)
        assert [hook.label for hook in orchestrator.hooks.hooks_for(ACCOUNTS)] == [
            "seed_accounts"
        ]

    async def test_starts_everything_and_seeds_accounts(
        self, fakes: tuple[FakeCache, FakeAccountsStore]
    ) -> None:
        cache, store = fakes
        orchestrator = build_orchestrator(_settings())

        try:
            report = await orchestrator.start()
            assert report.ok, report.to_dict()
            assert store.items["Accounts"]["1"]["Name"] == "Amazon"

            gateway = orchestrator.manager.get(GATEWAY)
            async with aiohttp.ClientSession() as session:
                async with session.get(f"{gateway.base_url}/add/2/5") as response:
                    body = json.loads(await response.text())
                async with session.get(f"{gateway.base_url}/health/ready") as response:
                    readiness = await response.json()
        finally:
            await orchestrator.shutdown()

        assert body["Sum"] == 7
        assert body["HttpRequest"]["StatusCode"] == -1
        assert readiness["ready"] is True
        assert set(readiness["checks"]) == {CACHE, ACCOUNTS, FUNCTION, GATEWAY}
        assert cache.closed
        assert store.closed

    async def test_store_never_ready_skips_function_and_gateway(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store = FakeAccountsStore(ready=False)
        monkeypatch.setattr(host, "RedisResource", FakeFactory(FakeCache()))
        monkeypatch.setattr(host, "DynamoDbDocumentStore", FakeFactory(store))
        orchestrator = build_orchestrator(_settings(readiness_timeout_seconds=0.1))

        try:
            report = await orchestrator.start()
        finally:
            await orchestrator.shutdown()

        assert report.state_of(CACHE) is ResourceState.READY
        assert report.outcomes[ACCOUNTS].error == "down"
        assert report.outcomes[FUNCTION].skipped_because == (ACCOUNTS,)
        assert report.state_of(GATEWAY) is ResourceState.SKIPPED
        assert store.items == {}


class TestProvisioning:
    async def test_container_removed_on_shutdown(
        self, fakes: tuple[FakeCache, FakeAccountsStore], tmp_path: Path
    ) -> None:
        container = FakeContainer(tmp_path)
        orchestrator = build_orchestrator(_settings(cache=container.commands()))

        try:
            report = await orchestrator.start()
            assert report.ok, report.to_dict()
            assert container.running
        finally:
            await orchestrator.shutdown()

        assert container.history == ["stop", "start", "stop"]
        assert not container.running

    async def test_leftover_container_does_not_block_start(
        self, fakes: tuple[FakeCache, FakeAccountsStore], tmp_path: Path
    ) -> None:
        container = FakeContainer(tmp_path)
        container.marker.touch()
        orchestrator = build_orchestrator(_settings(cache=container.commands()))

        try:
            report = await orchestrator.start()
        finally:
            await orchestrator.shutdown()

        assert report.state_of(CACHE) is ResourceState.READY
        assert container.history == ["stop", "start", "stop"]

    async def test_retry_replaces_container(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        container = FakeContainer(tmp_path)
        store = FakeAccountsStore(ready=False)
        monkeypatch.setattr(host, "RedisResource", FakeFactory(FakeCache()))
        monkeypatch.setattr(host, "DynamoDbDocumentStore", FakeFactory(store))
        orchestrator = build_orchestrator(
            _settings(readiness_timeout_seconds=0.1, **container.commands())
        )

        try:
            first = await orchestrator.start()
            assert first.state_of(ACCOUNTS) is ResourceState.FAILED
            assert container.running

            store.ready = True
            second = await orchestrator.start()
            assert second.ok, second.to_dict()
            assert container.running
        finally:
            await orchestrator.shutdown()

        # stale handle released, then the new attempt clears and starts again
        assert container.history == ["stop", "start", "stop", "stop", "start", "stop"]
        assert not container.running


class TestRunApphost:
    async def test_check_only_prints_report(
        self, fakes: tuple[FakeCache, FakeAccountsStore]
    ) -> None:
        output = StringIO()

        exit_code = await run_apphost(_settings(), check_only=True, output=output)

        payload = json.loads(output.getvalue())
        assert exit_code == 0
        assert payload["ok"] is True
        assert list(payload["resources"]) == [CACHE, ACCOUNTS, FUNCTION, GATEWAY]

    async def test_failure_exit_code(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(host, "RedisResource", FakeFactory(FakeCache()))
        monkeypatch.setattr(
            host, "DynamoDbDocumentStore", FakeFactory(FakeAccountsStore(ready=False))
        )
        output = StringIO()

        exit_code = await run_apphost(
            _settings(readiness_timeout_seconds=0.1),
            check_only=True,
            output=output,
        )

        payload = json.loads(output.getvalue())
        assert exit_code == 1
        assert payload["resources"][GATEWAY]["state"] == "skipped"


class TestCommandLine:
    def test_parser_defaults(self) -> None:
        args = build_parser().parse_args([])

        assert args.config_dir == Path("config")
        assert args.env is None
        assert args.deadline_seconds is None
        assert args.check_only is False

    def test_parser_options(self) -> None:
        args = build_parser().parse_args(
            ["--config-dir", "/etc/apphost", "--env", "staging", "--deadline-seconds", "45"]
        )

        assert args.config_dir == Path("/etc/apphost")
        assert args.env == "staging"
        assert args.deadline_seconds == 45.0

    def test_missing_configuration_exits_2(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        exit_code = main(["--config-dir", str(tmp_path), "--check-only"])

        assert exit_code == 2
        assert "Configuration file not found" in capsys.readouterr().err
