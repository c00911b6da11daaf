"""Accounts table model and the hook that seeds it once the store is ready."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from orchid_apphost.resources.document import DocumentStore
from orchid_apphost.runtime.hooks import HookAction
from orchid_apphost.runtime.models import ResourceReadyEvent

logger = logging.getLogger(__name__)

ACCOUNTS_TABLE = "Accounts"
ACCOUNTS_HASH_KEY = "Id"


class Account(BaseModel):
    """Row of the accounts table, keyed by the string ``Id`` attribute."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1, alias="Id")
    name: str = Field(..., alias="Name")
    address: str = Field(..., alias="Address")

    def to_item(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> Account:
        return cls.model_validate(item)


SEED_ACCOUNTS: tuple[Account, ...] = (
    Account(id="1", name="Amazon", address="Seattle, WA"),
)


async def seed_accounts(
    store: DocumentStore,
    *,
    table: str = ACCOUNTS_TABLE,
    accounts: tuple[Account, ...] = SEED_ACCOUNTS,
) -> int:
    """Create ``table`` if missing and write ``accounts``; returns rows written.

    Safe to repeat: an existing table is reused and rows are overwritten.
    """
    created = await store.create_table(table, hash_key=ACCOUNTS_HASH_KEY)
    wait_active = getattr(store, "wait_table_active", None)
    if created and wait_active is not None:
        await wait_active(table)
    for account in accounts:
        await store.put_item(table, account.to_item())
    logger.info(
        "Seeded accounts table",
        extra={"table": table, "table_created": created, "rows": len(accounts)},
    )
    return len(accounts)


async def load_account(
    store: DocumentStore,
    account_id: str,
    *,
    table: str = ACCOUNTS_TABLE,
) -> Account | None:
    item = await store.get_item(table, {ACCOUNTS_HASH_KEY: account_id})
    return None if item is None else Account.from_item(item)


def seed_accounts_hook(table: str = ACCOUNTS_TABLE) -> HookAction:
    """Post-ready hook seeding the store carried by the ready event."""

    async def hook(event: ResourceReadyEvent) -> None:
        if event.handle is None:
            raise RuntimeError(f"Resource {event.name!r} has no document store handle")
        await seed_accounts(event.handle, table=table)

    hook.__name__ = hook.__qualname__ = "seed_accounts"
    return hook
