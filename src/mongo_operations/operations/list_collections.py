"""List the collections of a database.

Servers since 3.0 answer the ``listCollections`` command. Older servers
only expose the ``<db>.system.namespaces`` catalog, which lists every
collection and index of the database under fully qualified names; the
query-based variant reads that catalog and rewrites its output so that it
looks like ``listCollections`` output.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..cursors import (
    AsyncBatchTransformingCursor,
    AsyncCommandCursor,
    BatchTransformingCursor,
    CommandCursor,
)
from ..documents import (
    Document,
    get_string_field,
    require_plain_string,
    shallow_clone,
)
from ..exceptions import InvalidArgumentError
from ..retry import execute_with_retry, execute_with_retry_async
from .base import ReadOperation
from .features import (
    LIST_COLLECTIONS_COMMAND,
    ExecutorChoice,
    Supported,
    Unsupported,
)
from .find import FindOperation

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from ..cancellation import CancellationToken
    from ..context import RetryableReadContext
    from ..namespace import DatabaseNamespace
    from ..ports.binding import ServerDescription
    from ..ports.cursor import AsyncBatchCursor, BatchCursor
    from ..settings import MessageEncoderSettings, RetrySettings

logger = logging.getLogger("mongo_operations.list_collections")

_LEGACY_NAME_FILTER_MESSAGE = (
    "Name filter must be a plain string when connected to a server version "
    "less than 3.0."
)


class _ListCollectionsBase(ReadOperation[Any, Any]):
    operation_name = "listCollections"

    def __init__(
        self,
        database_namespace: DatabaseNamespace,
        message_encoder_settings: MessageEncoderSettings,
        *,
        retry_settings: RetrySettings | None = None,
    ) -> None:
        if database_namespace is None:
            raise InvalidArgumentError("database_namespace")
        super().__init__(message_encoder_settings, retry_settings=retry_settings)
        self._database_namespace = database_namespace
        self.filter: Mapping[str, Any] | None = None
        self.batch_size: int | None = None

    @property
    def database_namespace(self) -> DatabaseNamespace:
        return self._database_namespace

    @property
    def namespace_label(self) -> str:
        return self._database_namespace.database_name


class ListCollectionsUsingCommandOperation(_ListCollectionsBase):
    """``listCollections`` for servers that support the command."""

    def __init__(
        self,
        database_namespace: DatabaseNamespace,
        message_encoder_settings: MessageEncoderSettings,
        *,
        retry_settings: RetrySettings | None = None,
    ) -> None:
        super().__init__(
            database_namespace, message_encoder_settings, retry_settings=retry_settings
        )
        self.name_only: bool | None = None
        self.authorized_collections: bool | None = None

    def create_command(self) -> dict[str, Any]:
        command: dict[str, Any] = {"listCollections": 1}
        if self.filter is not None:
            command["filter"] = self.filter
        if self.name_only is not None:
            command["nameOnly"] = self.name_only
        if self.authorized_collections is not None:
            command["authorizedCollections"] = self.authorized_collections
        cursor: dict[str, Any] = {}
        if self.batch_size is not None:
            cursor["batchSize"] = self.batch_size
        command["cursor"] = cursor
        return command

    def _execute(
        self, context: RetryableReadContext, cancellation_token: CancellationToken
    ) -> CommandCursor[Document]:
        return self._run_cursor_command(
            context,
            self._database_namespace.database_name,
            self.create_command(),
            cancellation_token,
            batch_size=self.batch_size,
        )

    async def _execute_async(
        self, context: RetryableReadContext, cancellation_token: CancellationToken
    ) -> AsyncCommandCursor[Document]:
        return await self._run_cursor_command_async(
            context,
            self._database_namespace.database_name,
            self.create_command(),
            cancellation_token,
            batch_size=self.batch_size,
        )


class ListCollectionsUsingQueryOperation(_ListCollectionsBase):
    """List collections by querying the legacy ``system.namespaces`` catalog."""

    def _validate(self) -> None:
        self.create_legacy_filter()

    def create_legacy_filter(self) -> Mapping[str, Any] | None:
        """Translate :attr:`filter` to the catalog's fully qualified names.

        The caller's filter is never modified; a ``name`` comparison is
        rewritten on a shallow copy. The database prefix is always added,
        so callers supply bare collection names.
        """
        if self.filter is None or "name" not in self.filter:
            return self.filter
        name = require_plain_string(self.filter, "name", _LEGACY_NAME_FILTER_MESSAGE)
        legacy_filter = shallow_clone(self.filter)
        legacy_filter["name"] = f"{self._database_namespace.database_name}.{name}"
        return legacy_filter

    def create_find_operation(self) -> FindOperation[Document]:
        operation: FindOperation[Document] = FindOperation(
            self._database_namespace.system_namespaces_collection,
            self.message_encoder_settings,
            retry_settings=self.retry_settings,
        )
        operation.filter = self.create_legacy_filter()
        operation.batch_size = self.batch_size
        operation.retry_requested = self.retry_requested
        return operation

    def normalize_query_response(
        self, batch: Iterable[Mapping[str, Any]]
    ) -> Iterator[Document]:
        return normalize_catalog_batch(self._database_namespace, batch)

    def _execute(
        self, context: RetryableReadContext, cancellation_token: CancellationToken
    ) -> BatchTransformingCursor[Document, Document]:
        cursor = self.create_find_operation().execute_in_context(
            context, cancellation_token
        )
        return BatchTransformingCursor(cursor, self.normalize_query_response)

    async def _execute_async(
        self, context: RetryableReadContext, cancellation_token: CancellationToken
    ) -> AsyncBatchTransformingCursor[Document, Document]:
        cursor = await self.create_find_operation().execute_in_context_async(
            context, cancellation_token
        )
        return AsyncBatchTransformingCursor(cursor, self.normalize_query_response)


def normalize_catalog_batch(
    database_namespace: DatabaseNamespace, batch: Iterable[Mapping[str, Any]]
) -> Iterator[Document]:
    """Turn ``system.namespaces`` entries into ``listCollections`` entries.

    Entries of other databases are dropped, ``name`` loses its database
    prefix, and names containing ``$`` (indexes, internal objects) are
    dropped. Order is preserved and the input documents are not modified.
    """
    prefix = f"{database_namespace.database_name}."
    for document in batch:
        name = get_string_field(document, "name")
        if not name.startswith(prefix):
            continue
        collection_name = name[len(prefix) :]
        if "$" in collection_name:
            continue
        collection = shallow_clone(document)
        collection["name"] = collection_name
        yield collection


class ListCollectionsOperation(_ListCollectionsBase):
    """List collections, using the command when the server supports it.

    The choice is made per attempt from the description of the server the
    context is bound to; callers receive the same document shape either way.
    """

    def __init__(
        self,
        database_namespace: DatabaseNamespace,
        message_encoder_settings: MessageEncoderSettings,
        *,
        retry_settings: RetrySettings | None = None,
    ) -> None:
        super().__init__(
            database_namespace, message_encoder_settings, retry_settings=retry_settings
        )
        self.name_only: bool | None = None
        self.authorized_collections: bool | None = None

    def choose_executor(
        self, server_description: ServerDescription
    ) -> ExecutorChoice[_ListCollectionsBase]:
        if LIST_COLLECTIONS_COMMAND.is_supported(server_description):
            command = ListCollectionsUsingCommandOperation(
                self._database_namespace,
                self.message_encoder_settings,
                retry_settings=self.retry_settings,
            )
            command.name_only = self.name_only
            command.authorized_collections = self.authorized_collections
            return Supported(self._configure(command))
        logger.debug(
            "Server %s (wire version %d) predates listCollections; "
            "querying system.namespaces",
            server_description.address,
            server_description.max_wire_version,
        )
        return Unsupported(
            self._configure(
                ListCollectionsUsingQueryOperation(
                    self._database_namespace,
                    self.message_encoder_settings,
                    retry_settings=self.retry_settings,
                )
            )
        )

    def _configure(self, operation: _ListCollectionsBase) -> _ListCollectionsBase:
        operation.filter = self.filter
        operation.batch_size = self.batch_size
        operation.retry_requested = self.retry_requested
        return operation

    # The executor is chosen inside each attempt, against the server that
    # attempt is bound to, and runs on a view of the context that does not
    # retry on its own.

    def _execute(
        self, context: RetryableReadContext, cancellation_token: CancellationToken
    ) -> BatchCursor[Document]:
        def attempt(ctx: RetryableReadContext) -> BatchCursor[Document]:
            choice = self.choose_executor(ctx.server_description)
            result: BatchCursor[Document] = choice.executor.execute_in_context(
                ctx.borrow(retry_requested=False), cancellation_token
            )
            return result

        return execute_with_retry(
            context, attempt, cancellation_token, self.retry_settings
        )

    async def _execute_async(
        self, context: RetryableReadContext, cancellation_token: CancellationToken
    ) -> AsyncBatchCursor[Document]:
        async def attempt(ctx: RetryableReadContext) -> AsyncBatchCursor[Document]:
            choice = self.choose_executor(ctx.server_description)
            result: AsyncBatchCursor[Document] = (
                await choice.executor.execute_in_context_async(
                    ctx.borrow(retry_requested=False), cancellation_token
                )
            )
            return result

        return await execute_with_retry_async(
            context, attempt, cancellation_token, self.retry_settings
        )
