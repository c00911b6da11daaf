"""Clients for the resources the app host provisions."""

from orchid_apphost.resources.document import (
    DocumentAuthError,
    DocumentNotFoundError,
    DocumentOperationError,
    DocumentStore,
    DocumentStoreError,
    DocumentTransientError,
    DocumentValidationError,
)
from orchid_apphost.resources.dynamodb import DynamoDbDocumentStore
from orchid_apphost.resources.redis import RedisResource

__all__ = [
    "DocumentAuthError",
    "DocumentNotFoundError",
    "DocumentOperationError",
    "DocumentStore",
    "DocumentStoreError",
    "DocumentTransientError",
    "DocumentValidationError",
    "DynamoDbDocumentStore",
    "RedisResource",
]
