"""Wires the demo resources into an orchestrator and runs it from the command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from orchid_apphost.config.errors import ConfigError
from orchid_apphost.config.loader import DEFAULT_CONFIG_DIR, load_config, resolve_env
from orchid_apphost.config.models import AppHostSettings
from orchid_apphost.demo.accounts import seed_accounts_hook
from orchid_apphost.demo.functions import AddFunction
from orchid_apphost.demo.gateway import GatewayEmulator
from orchid_apphost.observability.logging import bootstrap_logging_from_settings
from orchid_apphost.observability.metrics import MetricsRecorder, configure_prometheus_metrics
from orchid_apphost.resources.dynamodb import DynamoDbDocumentStore
from orchid_apphost.resources.redis import RedisResource
from orchid_apphost.runtime.actions import CommandProvisioner
from orchid_apphost.runtime.errors import ShutdownError
from orchid_apphost.runtime.manager import ResourceManager
from orchid_apphost.runtime.models import StartReport
from orchid_apphost.runtime.orchestrator import Orchestrator, OrchestratorConfig
from orchid_apphost.runtime.probes import health_check_probe
from orchid_apphost.runtime.readiness import ReadinessWaiter
from orchid_apphost.runtime.registry import ResourceSpec

logger = logging.getLogger(__name__)

CACHE = "cache"
ACCOUNTS = "DynamoDBAccounts"
FUNCTION = "AddFunctionHandler"
GATEWAY = "APIGatewayEmulator"


def build_orchestrator_config(
    settings: AppHostSettings,
    manager: ResourceManager,
    *,
    metrics: MetricsRecorder | None = None,
    readiness: Callable[[], Any] | None = None,
) -> OrchestratorConfig:
    """Declare cache, accounts store, add function and gateway with their edges.

    Every probe looks its handle up in ``manager``, which the orchestrator fills
    with whatever the start action returns.
    """
    resources = settings.resources
    config = OrchestratorConfig()

    async def start_cache(spec: ResourceSpec) -> RedisResource:
        cache = resources.cache
        provisioner = CommandProvisioner.create(spec.name, cache.start_command, cache.stop_command)
        await provisioner.provision(spec)
        try:
            return RedisResource.from_settings(
                cache, metrics=metrics, teardown=provisioner.deprovision
            )
        except BaseException:
            await provisioner.deprovision()
            raise

    async def start_accounts(spec: ResourceSpec) -> DynamoDbDocumentStore:
        accounts = resources.accounts
        provisioner = CommandProvisioner.create(
            spec.name, accounts.start_command, accounts.stop_command
        )
        await provisioner.provision(spec)
        try:
            return DynamoDbDocumentStore.from_settings(
                accounts, metrics=metrics, teardown=provisioner.deprovision
            )
        except BaseException:
            await provisioner.deprovision()
            raise

    async def start_function(_: ResourceSpec) -> AddFunction:
        return AddFunction.create(settings, metrics=metrics)

    async def start_gateway(_: ResourceSpec) -> GatewayEmulator:
        gateway = GatewayEmulator(
            manager.get(FUNCTION),
            resources.gateway,
            readiness=readiness,
        )
        return await gateway.start()

    config.add_resource(
        CACHE,
        start=start_cache,
        probe=_handle_probe(manager, CACHE),
        readiness_timeout_seconds=resources.cache.readiness_timeout_seconds,
    )
    config.add_resource(
        ACCOUNTS,
        start=start_accounts,
        probe=_handle_probe(manager, ACCOUNTS),
        readiness_timeout_seconds=resources.accounts.readiness_timeout_seconds,
    )
    config.add_resource(
        FUNCTION,
        depends_on=[CACHE, ACCOUNTS],
        start=start_function,
        probe=_handle_probe(manager, FUNCTION),
    )
    config.add_resource(
        GATEWAY,
        depends_on=[FUNCTION],
        start=start_gateway,
        probe=_handle_probe(manager, GATEWAY),
        readiness_timeout_seconds=resources.gateway.readiness_timeout_seconds,
    )
    config.on_ready(ACCOUNTS, seed_accounts_hook(resources.accounts.table_name))
    return config


def build_orchestrator(
    settings: AppHostSettings,
    *,
    metrics: MetricsRecorder | None = None,
) -> Orchestrator:
    manager = ResourceManager(_metrics=metrics)
    holder: dict[str, Orchestrator] = {}

    async def readiness() -> Any:
        return await holder["orchestrator"].readiness_report()

    config = build_orchestrator_config(settings, manager, metrics=metrics, readiness=readiness)
    orchestrator = Orchestrator(
        config,
        waiter=ReadinessWaiter.from_settings(settings.orchestrator),
        manager=manager,
        metrics=metrics,
    )
    holder["orchestrator"] = orchestrator
    return orchestrator


async def run_apphost(
    settings: AppHostSettings,
    *,
    deadline_seconds: float | None = None,
    check_only: bool = False,
    output: Any = None,
) -> int:
    """Start everything, print the report and serve until cancelled.

    Returns the process exit code: 0 when every resource became ready.
    """
    metrics: MetricsRecorder | None = None
    observability = settings.observability
    if observability.enabled and observability.metrics_enabled:
        metrics = configure_prometheus_metrics(prefix=observability.metrics_prefix)

    orchestrator = build_orchestrator(settings, metrics=metrics)
    deadline = deadline_seconds or settings.orchestrator.deadline_seconds
    try:
        report = await orchestrator.start(deadline_seconds=deadline)
        _print_report(report, output)
        if report.ok and not check_only:
            logger.info("App host running; press Ctrl+C to stop")
            await asyncio.Event().wait()
        return 0 if report.ok else 1
    finally:
        await orchestrator.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orchid-apphost",
        description="Start the cache, accounts store, add function and gateway in order.",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=DEFAULT_CONFIG_DIR,
        help="Directory holding appsettings.json (default: ./config)",
    )
    parser.add_argument("--env", default=None, help="Environment name (default: APPHOST_ENV)")
    parser.add_argument(
        "--deadline-seconds",
        type=float,
        default=None,
        help="Cancel resources that are still starting after this many seconds",
    )
    parser.add_argument(
        "--check-only",
        action="store_true",
        help="Start everything, print the report, then shut down",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    env = resolve_env(args.env)
    try:
        settings = load_config(config_dir=args.config_dir, env=env)
    except ConfigError as exc:
        print(f"orchid-apphost: {exc}", file=sys.stderr)
        return 2

    bootstrap_logging_from_settings(settings, env=env)
    try:
        return asyncio.run(
            run_apphost(
                settings,
                deadline_seconds=args.deadline_seconds,
                check_only=args.check_only,
            )
        )
    except KeyboardInterrupt:
        logger.info("App host stopped")
        return 0
    except ShutdownError as exc:
        logger.error("App host shutdown incomplete", extra={"resources": sorted(exc.errors)})
        return 1


def _handle_probe(manager: ResourceManager, name: str) -> Callable[[], Any]:
    return health_check_probe(lambda: manager.get(name) if manager.has(name) else None)


def _print_report(report: StartReport, output: Any) -> None:
    stream = sys.stdout if output is None else output
    stream.write(json.dumps(report.to_dict(), indent=2) + "\n")
    stream.flush()
