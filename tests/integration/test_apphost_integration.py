"""End-to-end startup of the demo app host against real services."""

from __future__ import annotations

import json
from io import StringIO

import pytest

from orchid_apphost.config.models import AccountsStoreSettings, AppHostSettings, CacheSettings
from orchid_apphost.demo.host import ACCOUNTS, CACHE, FUNCTION, GATEWAY, run_apphost

pytestmark = pytest.mark.integration


async def test_check_only_startup(
    cache_settings: CacheSettings,
    accounts_settings: AccountsStoreSettings,
) -> None:
    settings = AppHostSettings.model_validate(
        {
            "orchestrator": {"readiness_timeout_seconds": 20},
            "resources": {
                "cache": {"url": cache_settings.url.get_secret_value()},
                "accounts": {"endpoint_url": accounts_settings.endpoint_url},
                "gateway": {"port": 0},
            },
        }
    )
    output = StringIO()

    exit_code = await run_apphost(settings, deadline_seconds=60, check_only=True, output=output)

    report = json.loads(output.getvalue())
    assert exit_code == 0, report
    states = [report["resources"][name]["state"] for name in (CACHE, ACCOUNTS, FUNCTION, GATEWAY)]
    assert states == ["ready"] * 4
    assert report["hook_failures"] == []
