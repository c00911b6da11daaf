"""Fixtures for integration tests against real Redis and DynamoDB Local."""

from __future__ import annotations

import os
import socket
import time
from collections.abc import Iterator
from contextlib import suppress
from urllib.error import HTTPError
from urllib.request import urlopen

import pytest

from orchid_apphost.config.models import AccountsStoreSettings, CacheSettings


def _require_docker() -> None:
    docker = pytest.importorskip("docker")
    try:
        client = docker.from_env()
        client.ping()
    except Exception as exc:  # pragma: no cover - environment dependent
        pytest.skip(f"Docker is not available for integration tests: {exc}")


def _wait_for_http_ready(url: str, timeout_seconds: float = 30.0) -> None:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        try:
            with urlopen(url, timeout=1.0) as response:
                if response.status < 500:
                    return
        except HTTPError as exc:
            if exc.code < 500:
                return
            time.sleep(0.2)
        except OSError:
            time.sleep(0.2)
    raise RuntimeError(f"Timed out waiting for service readiness: {url}")


def _wait_for_tcp_ready(host: str, port: int, timeout_seconds: float = 30.0) -> None:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return
        except OSError:
            time.sleep(0.2)
    raise RuntimeError(f"Timed out waiting for {host}:{port}")


@pytest.fixture(scope="session")
def cache_settings() -> Iterator[CacheSettings]:
    pytest.importorskip("redis")

    external_url = os.getenv("APPHOST_REDIS_URL")
    if external_url:
        yield CacheSettings(url=external_url)
        return

    _require_docker()
    DockerContainer = pytest.importorskip("testcontainers.core.container").DockerContainer
    image = os.getenv("APPHOST_REDIS_IMAGE", "redis:7-alpine")
    container = DockerContainer(image).with_exposed_ports(6379)

    try:
        container.start()
    except Exception as exc:  # pragma: no cover - environment dependent
        pytest.skip(f"Could not start Redis container: {exc}")

    try:
        host = container.get_container_host_ip()
        port = int(container.get_exposed_port(6379))
        _wait_for_tcp_ready(host, port)
        yield CacheSettings(url=f"redis://{host}:{port}/0")
    finally:
        with suppress(Exception):
            container.stop()


@pytest.fixture(scope="session")
def accounts_settings() -> Iterator[AccountsStoreSettings]:
    pytest.importorskip("boto3")

    external_url = os.getenv("APPHOST_DYNAMODB_URL")
    if external_url:
        yield AccountsStoreSettings(endpoint_url=external_url)
        return

    _require_docker()
    DockerContainer = pytest.importorskip("testcontainers.core.container").DockerContainer
    image = os.getenv("APPHOST_DYNAMODB_IMAGE", "amazon/dynamodb-local:latest")
    container = DockerContainer(image).with_exposed_ports(8000)

    try:
        container.start()
    except Exception as exc:  # pragma: no cover - environment dependent
        pytest.skip(f"Could not start DynamoDB Local container: {exc}")

    try:
        host = container.get_container_host_ip()
        port = int(container.get_exposed_port(8000))
        endpoint = f"http://{host}:{port}"
        _wait_for_http_ready(endpoint)
        yield AccountsStoreSettings(endpoint_url=endpoint)
    finally:
        with suppress(Exception):
            container.stop()
