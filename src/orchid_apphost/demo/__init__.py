"""Demo app host: Redis cache, DynamoDB accounts store, add function and gateway."""

from orchid_apphost.demo.accounts import Account, load_account, seed_accounts, seed_accounts_hook
from orchid_apphost.demo.functions import AddFunction, InvalidOperandError
from orchid_apphost.demo.gateway import GatewayEmulator, build_gateway_app, build_proxy_event
from orchid_apphost.demo.host import (
    ACCOUNTS,
    CACHE,
    FUNCTION,
    GATEWAY,
    build_orchestrator,
    build_orchestrator_config,
    main,
    run_apphost,
)

__all__ = [
    "ACCOUNTS",
    "CACHE",
    "FUNCTION",
    "GATEWAY",
    "Account",
    "AddFunction",
    "GatewayEmulator",
    "InvalidOperandError",
    "build_gateway_app",
    "build_orchestrator",
    "build_orchestrator_config",
    "build_proxy_event",
    "load_account",
    "main",
    "run_apphost",
    "seed_accounts",
    "seed_accounts_hook",
]
