"""Unit tests for recursive placeholder resolution."""

from __future__ import annotations

import pytest

from orchid_apphost.config.errors import PlaceholderResolutionError
from orchid_apphost.config.placeholders import resolve_placeholders


def test_resolve_placeholders_recurses_through_nested_lists_and_dicts(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("X", "ok")

    resolved = resolve_placeholders(
        {
            "items": [
                {"v": "${X}"},
                ["${X}", {"nested": "pre-${X}-post"}],
                "${X}",
            ],
            "other": 42,
        }
    )

    assert resolved == {
        "items": [
            {"v": "ok"},
            ["ok", {"nested": "pre-ok-post"}],
            "ok",
        ],
        "other": 42,
    }


def test_default_used_when_variable_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APPHOST_DYNAMODB_URL", raising=False)

    resolved = resolve_placeholders({"url": "${APPHOST_DYNAMODB_URL:-http://localhost:8000}"})

    assert resolved == {"url": "http://localhost:8000"}


def test_variable_wins_over_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APPHOST_DYNAMODB_URL", "http://dynamodb:8000")

    resolved = resolve_placeholders({"url": "${APPHOST_DYNAMODB_URL:-http://localhost:8000}"})

    assert resolved == {"url": "http://dynamodb:8000"}


def test_empty_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APPHOST_KEY_PREFIX", raising=False)

    assert resolve_placeholders({"prefix": "${APPHOST_KEY_PREFIX:-}"}) == {"prefix": ""}


def test_resolve_placeholders_reports_nested_path_in_lists(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("MISSING_ENV", raising=False)

    with pytest.raises(PlaceholderResolutionError) as exc_info:
        resolve_placeholders({"items": [{"deep": "${MISSING_ENV}"}]})

    assert "items[0].deep" in str(exc_info.value)


def test_resolve_placeholders_keeps_unresolved_when_non_strict(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("MISSING_ENV", raising=False)

    resolved = resolve_placeholders(
        {"items": [{"deep": "${MISSING_ENV}"}, ["${MISSING_ENV}"]]},
        strict=False,
    )

    assert resolved == {"items": [{"deep": "${MISSING_ENV}"}, ["${MISSING_ENV}"]]}
