"""Tests for the ObservedClient metrics mixin."""

from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, ClassVar
from unittest.mock import MagicMock

import pytest

from orchid_apphost.observability.metrics import (
    NoopMetricsRecorder,
    ObservedClient,
    get_metrics_recorder,
    set_metrics_recorder,
)


class PingClient(ObservedClient):
    _resource_name = "ping"

    def __init__(self, *, metrics: Any = None) -> None:
        self._metrics = metrics


@dataclass(slots=True)
class SlottedClient(ObservedClient):
    _resource_name: ClassVar[str] = "slotted"

    endpoint: str
    _metrics: Any = None


@pytest.fixture
def recorder() -> MagicMock:
    return MagicMock(spec=NoopMetricsRecorder)


class TestMetricsRecorder:
    def test_returns_injected_recorder(self, recorder: MagicMock) -> None:
        assert PingClient(metrics=recorder)._metrics_recorder() is recorder

    def test_falls_back_to_process_recorder(self, recorder: MagicMock) -> None:
        set_metrics_recorder(recorder)
        try:
            assert PingClient()._metrics_recorder() is recorder
        finally:
            set_metrics_recorder(None)

        assert isinstance(get_metrics_recorder(), NoopMetricsRecorder)


class TestObserve:
    def test_operation_success(self, recorder: MagicMock) -> None:
        PingClient(metrics=recorder)._observe_operation("ping", perf_counter(), success=True)

        kwargs = recorder.observe_operation.call_args.kwargs
        assert kwargs["resource"] == "ping"
        assert kwargs["operation"] == "ping"
        assert kwargs["success"] is True
        assert kwargs["duration_seconds"] >= 0

    def test_error_records_failed_operation_and_error_type(self, recorder: MagicMock) -> None:
        client = SlottedClient(endpoint="http://localhost:8000", _metrics=recorder)

        client._observe_error("put_item", perf_counter(), ConnectionError("refused"))

        assert recorder.observe_operation.call_args.kwargs["success"] is False
        error_kwargs = recorder.observe_error.call_args.kwargs
        assert error_kwargs == {
            "resource": "slotted",
            "operation": "put_item",
            "error_type": "ConnectionError",
        }

    def test_observed_block_records_success(self, recorder: MagicMock) -> None:
        with PingClient(metrics=recorder)._observed("get"):
            pass

        assert recorder.observe_operation.call_args.kwargs["operation"] == "get"
        assert recorder.observe_operation.call_args.kwargs["success"] is True
        recorder.observe_error.assert_not_called()

    def test_observed_block_records_and_reraises_errors(self, recorder: MagicMock) -> None:
        client = PingClient(metrics=recorder)

        with pytest.raises(TimeoutError):
            with client._observed("set"):
                raise TimeoutError("socket timeout")

        assert recorder.observe_operation.call_args.kwargs["success"] is False
        assert recorder.observe_error.call_args.kwargs["error_type"] == "TimeoutError"
