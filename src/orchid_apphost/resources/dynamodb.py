"""DynamoDB (and DynamoDB Local) document store backed by boto3."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from time import perf_counter
from typing import Any, ClassVar

from orchid_apphost.config.models import AccountsStoreSettings
from orchid_apphost.observability.metrics import MetricsRecorder, ObservedClient
from orchid_apphost.resources.document import (
    DocumentAuthError,
    DocumentNotFoundError,
    DocumentOperationError,
    DocumentStoreError,
    DocumentTransientError,
    DocumentValidationError,
)
from orchid_apphost.runtime.errors import MissingDependencyError
from orchid_apphost.runtime.health import ProbeResult

_NOT_FOUND_CODES = {"ResourceNotFoundException"}
_AUTH_CODES = {
    "AccessDeniedException",
    "ExpiredTokenException",
    "InvalidSignatureException",
    "MissingAuthenticationTokenException",
    "UnrecognizedClientException",
}
_VALIDATION_CODES = {"ValidationException", "SerializationException"}
_TRANSIENT_CODES = {
    "InternalServerError",
    "LimitExceededException",
    "ProvisionedThroughputExceededException",
    "RequestLimitExceeded",
    "ServiceUnavailable",
    "ThrottlingException",
}
_TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}
_LOCAL_CREDENTIALS = "local"


def _import_boto3() -> Any:
    try:
        import boto3
    except ImportError as exc:  # pragma: no cover - exercised when extras are absent
        raise MissingDependencyError(
            "DynamoDB store requires optional dependency 'boto3'. "
            "Install with: pip install 'orchid-apphost[dynamodb]'"
        ) from exc
    return boto3


def _import_dynamodb_types() -> Any:
    try:
        from boto3.dynamodb import types
    except ImportError as exc:  # pragma: no cover - exercised when extras are absent
        raise MissingDependencyError(
            "DynamoDB store requires optional dependency 'boto3'. "
            "Install with: pip install 'orchid-apphost[dynamodb]'"
        ) from exc
    return types


@dataclass(slots=True)
class DynamoDbDocumentStore(ObservedClient):
    """Async facade over a blocking boto3 DynamoDB client.

    Every call runs in a worker thread via ``asyncio.to_thread``. Items are
    plain Python mappings; numbers come back as ``decimal.Decimal``.
    """

    _resource_name: ClassVar[str] = "dynamodb"

    _client: Any
    endpoint_url: str | None = None
    poll_interval_seconds: float = 0.5
    _metrics: MetricsRecorder | None = None
    _closed: bool = False
    _teardown: Callable[[], Awaitable[None]] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: AccountsStoreSettings,
        *,
        metrics: MetricsRecorder | None = None,
        teardown: Callable[[], Awaitable[None]] | None = None,
    ) -> DynamoDbDocumentStore:
        """Build the client without contacting the endpoint.

        DynamoDB Local accepts any credentials, so a local endpoint without
        configured keys gets placeholder ones.
        """
        boto3 = _import_boto3()
        access_key = settings.access_key_id
        secret_key = settings.secret_access_key
        credentials: dict[str, str] = {}
        if access_key is not None and secret_key is not None:
            credentials = {
                "aws_access_key_id": access_key.get_secret_value(),
                "aws_secret_access_key": secret_key.get_secret_value(),
            }
        elif settings.endpoint_url is not None:
            credentials = {
                "aws_access_key_id": _LOCAL_CREDENTIALS,
                "aws_secret_access_key": _LOCAL_CREDENTIALS,
            }
        client = boto3.client(
            "dynamodb",
            endpoint_url=settings.endpoint_url,
            region_name=settings.region,
            **credentials,
        )
        return cls(
            _client=client,
            endpoint_url=settings.endpoint_url,
            _metrics=metrics,
            _teardown=teardown,
        )

    @property
    def client(self) -> Any:
        """Expose underlying boto3 client for advanced usage."""
        return self._client

    @property
    def is_connected(self) -> bool:
        return not self._closed

    async def list_tables(self) -> list[str]:
        response = await self._call("list_tables", None)
        return list(response.get("TableNames", []))

    async def create_table(self, table: str, *, hash_key: str) -> bool:
        """Create a pay-per-request table keyed by string ``hash_key``.

        Returns ``False`` when the table already exists.
        """
        if table in await self.list_tables():
            return False
        try:
            await self._call(
                "create_table",
                table,
                TableName=table,
                KeySchema=[{"AttributeName": hash_key, "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": hash_key, "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
        except DocumentOperationError as exc:
            if _error_code(exc.__cause__) == "ResourceInUseException":
                return False
            raise
        return True

    async def wait_table_active(self, table: str, *, timeout_seconds: float = 30.0) -> None:
        """Poll ``describe_table`` until the table reports ``ACTIVE``."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds
        while True:
            response = await self._call("describe_table", table, TableName=table)
            if response.get("Table", {}).get("TableStatus") == "ACTIVE":
                return
            if loop.time() >= deadline:
                raise DocumentTransientError(
                    "describe_table",
                    table,
                    f"table not active after {timeout_seconds}s",
                )
            await asyncio.sleep(self.poll_interval_seconds)

    async def delete_table(self, table: str) -> bool:
        """Delete ``table``; returns ``False`` when it did not exist."""
        try:
            await self._call("delete_table", table, TableName=table)
        except DocumentNotFoundError:
            return False
        return True

    async def put_item(self, table: str, item: Mapping[str, Any]) -> None:
        if not item:
            raise DocumentValidationError("put_item", table, "item must not be empty")
        await self._call("put_item", table, TableName=table, Item=_serialize(item))

    async def get_item(self, table: str, key: Mapping[str, Any]) -> dict[str, Any] | None:
        if not key:
            raise DocumentValidationError("get_item", table, "key must not be empty")
        response = await self._call(
            "get_item",
            table,
            TableName=table,
            Key=_serialize(key),
            ConsistentRead=True,
        )
        raw = response.get("Item")
        if raw is None:
            return None
        return _deserialize(raw)

    async def health_check(self) -> ProbeResult:
        """Ready when the endpoint answers ``ListTables``."""
        start = perf_counter()
        try:
            await self._call("list_tables", None, Limit=1)
        except Exception as exc:
            return ProbeResult(
                ready=False,
                latency_ms=(perf_counter() - start) * 1000,
                message=str(exc) or type(exc).__name__,
                details={"error_type": exc.__class__.__name__},
            )
        details = {"endpoint": self.endpoint_url} if self.endpoint_url else None
        return ProbeResult(
            ready=True,
            latency_ms=(perf_counter() - start) * 1000,
            message="ok",
            details=details,
        )

    async def close(self) -> None:
        """Close the underlying HTTP connection pool, then run ``teardown`` once."""
        close = getattr(self._client, "close", None)
        try:
            with self._observed("close"):
                if callable(close):
                    await asyncio.to_thread(close)
        finally:
            self._closed = True
            teardown, self._teardown = self._teardown, None
            if teardown is not None:
                await teardown()

    async def _call(self, operation: str, table: str | None, **kwargs: Any) -> dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            with self._observed(operation):
                response = await asyncio.to_thread(method, **kwargs)
        except Exception as exc:
            raise _translate_dynamodb_error(operation=operation, table=table, exc=exc) from exc
        return response or {}


def _serialize(item: Mapping[str, Any]) -> dict[str, Any]:
    serializer = _import_dynamodb_types().TypeSerializer()
    return {key: serializer.serialize(value) for key, value in item.items()}


def _deserialize(raw: Mapping[str, Any]) -> dict[str, Any]:
    deserializer = _import_dynamodb_types().TypeDeserializer()
    return {key: deserializer.deserialize(value) for key, value in raw.items()}


def _translate_dynamodb_error(
    *,
    operation: str,
    table: str | None,
    exc: Exception,
) -> DocumentStoreError:
    if isinstance(exc, DocumentStoreError):
        return exc

    code = _error_code(exc)
    status = _error_status(exc)
    message = str(exc) or type(exc).__name__

    if code in _NOT_FOUND_CODES:
        return DocumentNotFoundError(operation, table, message)
    if code in _AUTH_CODES or status in {401, 403}:
        return DocumentAuthError(operation, table, message)
    if code in _VALIDATION_CODES:
        return DocumentValidationError(operation, table, message)
    if code in _TRANSIENT_CODES or status in _TRANSIENT_STATUS_CODES or _looks_transient(exc):
        return DocumentTransientError(operation, table, message)
    return DocumentOperationError(operation, table, message)


def _looks_transient(exc: Exception) -> bool:
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    name = type(exc).__name__.lower()
    return "timeout" in name or "connection" in name


def _error_response(exc: BaseException | None) -> Mapping[str, Any]:
    response = getattr(exc, "response", None)
    return response if isinstance(response, Mapping) else {}


def _error_code(exc: BaseException | None) -> str | None:
    code = _error_response(exc).get("Error", {}).get("Code")
    return None if code is None else str(code)


def _error_status(exc: BaseException | None) -> int | None:
    status = _error_response(exc).get("ResponseMetadata", {}).get("HTTPStatusCode")
    try:
        return None if status is None else int(status)
    except (TypeError, ValueError):
        return None
