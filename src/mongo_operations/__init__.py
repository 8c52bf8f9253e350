"""Retryable MongoDB read operations.

Operations turn a namespace, a filter and encoder settings into commands,
run them through a binding inside a retryable read context, and expose the
results as lazily fetched batch cursors. Servers without
``listCollections`` are served from the legacy catalog transparently.
"""

from __future__ import annotations

from .cancellation import CancellationToken
from .connection import MongoConnectionManager
from .context import BorrowedReadContext, ChannelLease, RetryableReadContext
from .cursors import (
    AsyncBatchTransformingCursor,
    AsyncCommandCursor,
    BatchTransformingCursor,
    CommandCursor,
    ListCursor,
    first_or_none,
    first_or_none_async,
    to_list,
    to_list_async,
)
from .events import current_operation_id, operation_scope
from .exceptions import (
    CommandError,
    CursorClosedError,
    CursorStateError,
    InvalidArgumentError,
    MongoConnectionError,
    MongoOperationError,
    NetworkError,
    NotSupportedError,
    NotWritablePrimaryError,
    OperationCancelledError,
    ProtocolViolationError,
    ServerSelectionError,
    TransientError,
)
from .namespace import CollectionNamespace, DatabaseNamespace
from .operations import (
    FindOperation,
    ListCollectionsOperation,
    ListCollectionsUsingCommandOperation,
    ListCollectionsUsingQueryOperation,
    ReadOperation,
)
from .retry import (
    execute_with_retry,
    execute_with_retry_async,
    is_retryable_read_error,
)
from .settings import MessageEncoderSettings, RetrySettings

__all__ = [
    # Operations
    "ReadOperation",
    "FindOperation",
    "ListCollectionsOperation",
    "ListCollectionsUsingCommandOperation",
    "ListCollectionsUsingQueryOperation",
    # Context and retry
    "RetryableReadContext",
    "BorrowedReadContext",
    "ChannelLease",
    "execute_with_retry",
    "execute_with_retry_async",
    "is_retryable_read_error",
    # Cursors
    "CommandCursor",
    "AsyncCommandCursor",
    "BatchTransformingCursor",
    "AsyncBatchTransformingCursor",
    "ListCursor",
    "to_list",
    "to_list_async",
    "first_or_none",
    "first_or_none_async",
    # Values and settings
    "CancellationToken",
    "CollectionNamespace",
    "DatabaseNamespace",
    "MessageEncoderSettings",
    "RetrySettings",
    "MongoConnectionManager",
    "current_operation_id",
    "operation_scope",
    # Exceptions
    "MongoOperationError",
    "InvalidArgumentError",
    "NotSupportedError",
    "ProtocolViolationError",
    "TransientError",
    "ServerSelectionError",
    "NetworkError",
    "NotWritablePrimaryError",
    "MongoConnectionError",
    "CommandError",
    "OperationCancelledError",
    "CursorStateError",
    "CursorClosedError",
]
