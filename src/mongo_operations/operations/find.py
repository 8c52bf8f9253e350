"""FindOperation — query a collection through the ``find`` command."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from ..cursors import AsyncCommandCursor, CommandCursor
from ..exceptions import InvalidArgumentError
from .base import ReadOperation

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..cancellation import CancellationToken
    from ..context import RetryableReadContext
    from ..namespace import CollectionNamespace
    from ..ports.serializer import DocumentSerializer
    from ..settings import MessageEncoderSettings, RetrySettings

T = TypeVar("T")


class FindOperation(
    ReadOperation[CommandCursor[T], AsyncCommandCursor[T]], Generic[T]
):
    """Find documents in a collection.

    Only the options that were set are sent to the server. A negative
    ``limit`` asks for a single batch, as the legacy query protocol did.
    """

    operation_name = "find"

    def __init__(
        self,
        collection_namespace: CollectionNamespace,
        message_encoder_settings: MessageEncoderSettings,
        serializer: DocumentSerializer[T] | None = None,
        *,
        retry_settings: RetrySettings | None = None,
    ) -> None:
        if collection_namespace is None:
            raise InvalidArgumentError("collection_namespace")
        super().__init__(message_encoder_settings, retry_settings=retry_settings)
        self._collection_namespace = collection_namespace
        self._serializer = serializer
        self.filter: Mapping[str, Any] | None = None
        self.projection: Mapping[str, Any] | None = None
        self.sort: Mapping[str, Any] | None = None
        self.skip: int | None = None
        self.limit: int | None = None
        self.batch_size: int | None = None
        self.comment: Any = None
        self.max_time_ms: int | None = None

    @property
    def collection_namespace(self) -> CollectionNamespace:
        return self._collection_namespace

    @property
    def namespace_label(self) -> str:
        return self._collection_namespace.full_name

    def _validate(self) -> None:
        if self.batch_size is not None and self.batch_size < 0:
            raise InvalidArgumentError("batch_size", "batch_size must be >= 0")
        if self.skip is not None and self.skip < 0:
            raise InvalidArgumentError("skip", "skip must be >= 0")

    def create_command(self) -> dict[str, Any]:
        command: dict[str, Any] = {"find": self._collection_namespace.collection_name}
        if self.filter is not None:
            command["filter"] = self.filter
        if self.sort is not None:
            command["sort"] = self.sort
        if self.projection is not None:
            command["projection"] = self.projection
        if self.skip:
            command["skip"] = self.skip
        if self.limit:
            command["limit"] = abs(self.limit)
            if self.limit < 0:
                command["singleBatch"] = True
        if self.batch_size is not None:
            command["batchSize"] = self.batch_size
        if self.comment is not None:
            command["comment"] = self.comment
        if self.max_time_ms is not None:
            command["maxTimeMS"] = self.max_time_ms
        return command

    def _execute(
        self, context: RetryableReadContext, cancellation_token: CancellationToken
    ) -> CommandCursor[T]:
        return self._run_cursor_command(
            context,
            self._collection_namespace.database_name,
            self.create_command(),
            cancellation_token,
            batch_size=self.batch_size,
            limit=self.limit,
            serializer=self._serializer,
        )

    async def _execute_async(
        self, context: RetryableReadContext, cancellation_token: CancellationToken
    ) -> AsyncCommandCursor[T]:
        return await self._run_cursor_command_async(
            context,
            self._collection_namespace.database_name,
            self.create_command(),
            cancellation_token,
            batch_size=self.batch_size,
            limit=self.limit,
            serializer=self._serializer,
        )
