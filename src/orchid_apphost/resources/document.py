"""Document store errors and the contract used by readiness hooks."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from orchid_apphost.runtime.errors import ApphostError
from orchid_apphost.runtime.health import ProbeResult


class DocumentStoreError(ApphostError):
    """Base exception for document store operations."""

    def __init__(
        self,
        operation: str,
        table: str | None,
        message: str,
    ) -> None:
        self.operation = operation
        self.table = table
        target = "<unknown>" if table is None else table
        super().__init__(f"Document {operation} failed for '{target}': {message}")


class DocumentValidationError(DocumentStoreError):
    """Raised when document operation arguments are invalid."""


class DocumentNotFoundError(DocumentStoreError):
    """Raised when a document or table does not exist."""


class DocumentAuthError(DocumentStoreError):
    """Raised when credentials are invalid or access is denied."""


class DocumentTransientError(DocumentStoreError):
    """Raised for retryable/transient document operation failures."""


class DocumentOperationError(DocumentStoreError):
    """Raised for non-transient document operation failures."""


@runtime_checkable
class DocumentStore(Protocol):
    """Key/value document tables as used by the accounts seeding hook.

    Implementations raise ``DocumentStoreError`` subclasses for backend failures.
    """

    async def list_tables(self) -> list[str]:
        ...

    async def create_table(self, table: str, *, hash_key: str) -> bool:
        """Create ``table`` unless it exists; return whether it was created."""
        ...

    async def put_item(self, table: str, item: Mapping[str, Any]) -> None:
        ...

    async def get_item(self, table: str, key: Mapping[str, Any]) -> dict[str, Any] | None:
        ...

    async def health_check(self) -> ProbeResult:
        ...

    async def close(self) -> None:
        ...
