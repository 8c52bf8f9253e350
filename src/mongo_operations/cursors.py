"""Batch cursors: raw command cursors and the batch-transforming wrapper."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from bson.int64 import Int64

from .cancellation import ensure_token
from .exceptions import (
    CursorClosedError,
    CursorStateError,
    InvalidArgumentError,
    MongoOperationError,
    ProtocolViolationError,
)
from .namespace import CollectionNamespace

if TYPE_CHECKING:
    from collections.abc import (
        AsyncIterator,
        Callable,
        Iterable,
        Iterator,
        Mapping,
        Sequence,
    )
    from types import TracebackType

    from .cancellation import CancellationToken
    from .context import ChannelLease
    from .ports.cursor import AsyncBatchCursor, BatchCursor
    from .ports.serializer import DocumentSerializer
    from .settings import MessageEncoderSettings

logger = logging.getLogger("mongo_operations.cursor")

T = TypeVar("T")
TSource = TypeVar("TSource")
TTarget = TypeVar("TTarget")


class _SyncCursorMixin(ABC, Generic[T]):
    """Iteration and ``with`` support for blocking cursors."""

    @abstractmethod
    def move_next(
        self, cancellation_token: CancellationToken | None = None
    ) -> bool: ...

    @property
    @abstractmethod
    def current(self) -> list[T]: ...

    @abstractmethod
    def close(self) -> None: ...

    def __iter__(self) -> Iterator[list[T]]:
        while self.move_next():
            yield self.current

    def documents(
        self, cancellation_token: CancellationToken | None = None
    ) -> Iterator[T]:
        """Yield every document, fetching batches as needed."""
        while self.move_next(cancellation_token):
            yield from self.current

    def __enter__(self) -> _SyncCursorMixin[T]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class _AsyncCursorMixin(ABC, Generic[T]):
    """``async for`` and ``async with`` support for cooperative cursors."""

    @abstractmethod
    async def move_next_async(
        self, cancellation_token: CancellationToken | None = None
    ) -> bool: ...

    @property
    @abstractmethod
    def current(self) -> list[T]: ...

    @abstractmethod
    def close(self) -> None: ...

    async def __aiter__(self) -> AsyncIterator[list[T]]:
        while await self.move_next_async():
            yield self.current

    async def documents(
        self, cancellation_token: CancellationToken | None = None
    ) -> AsyncIterator[T]:
        while await self.move_next_async(cancellation_token):
            for document in self.current:
                yield document

    async def __aenter__(self) -> _AsyncCursorMixin[T]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


# ── Raw cursors ──────────────────────────────────────────────────────


class _CommandCursorBase(Generic[T]):
    """State shared by the blocking and cooperative command cursors.

    Wraps the ``{"cursor": {"id", "ns", "firstBatch"}}`` reply of a
    cursor-producing command and builds the ``getMore``/``killCursors``
    commands that continue or abandon it.
    """

    def __init__(
        self,
        lease: ChannelLease,
        reply: Mapping[str, Any],
        encoder_settings: MessageEncoderSettings,
        *,
        batch_size: int | None = None,
        limit: int | None = None,
        serializer: DocumentSerializer[T] | None = None,
    ) -> None:
        cursor = reply.get("cursor")
        if (
            not isinstance(cursor, dict)
            or "firstBatch" not in cursor
            or not isinstance(cursor.get("ns"), str)
        ):
            lease.close()
            raise ProtocolViolationError(f"Reply has no cursor document: {reply!r}")
        self._lease = lease
        self._encoder_settings = encoder_settings
        self._batch_size = batch_size
        self._limit = abs(limit) if limit else None
        self._serializer = serializer
        self._cursor_id = int(cursor.get("id", 0))
        self._namespace = CollectionNamespace.from_full_name(cursor["ns"])
        self._pending: list[Any] | None = list(cursor["firstBatch"])
        self._current: list[T] | None = None
        self._returned = 0
        self._closed = False
        self._aborted = False

    @property
    def cursor_id(self) -> int:
        return self._cursor_id

    @property
    def namespace(self) -> CollectionNamespace:
        return self._namespace

    @property
    def current(self) -> list[T]:
        if self._current is None:
            raise CursorStateError("move_next() has not produced a batch")
        return self._current

    def _check_advanceable(self) -> None:
        if self._closed:
            raise CursorClosedError("Cursor has been closed")
        if self._aborted:
            raise CursorClosedError("Cursor was aborted by a failed fetch")

    def _limit_reached(self) -> bool:
        return self._limit is not None and self._returned >= self._limit

    def _get_more_command(self) -> dict[str, Any]:
        command: dict[str, Any] = {
            "getMore": Int64(self._cursor_id),
            "collection": self._namespace.collection_name,
        }
        batch_size = self._batch_size
        if self._limit is not None:
            remaining = self._limit - self._returned
            batch_size = min(batch_size, remaining) if batch_size else remaining
        if batch_size:
            command["batchSize"] = batch_size
        return command

    def _kill_cursors_command(self) -> dict[str, Any]:
        return {
            "killCursors": self._namespace.collection_name,
            "cursors": [Int64(self._cursor_id)],
        }

    def _take_next_batch(self, reply: Mapping[str, Any]) -> list[Any]:
        cursor = reply.get("cursor")
        if not isinstance(cursor, dict) or "nextBatch" not in cursor:
            raise ProtocolViolationError(f"getMore reply has no cursor: {reply!r}")
        self._cursor_id = int(cursor.get("id", 0))
        return list(cursor["nextBatch"])

    def _publish(self, raw_batch: list[Any]) -> None:
        if self._limit is not None:
            raw_batch = raw_batch[: self._limit - self._returned]
        self._returned += len(raw_batch)
        if self._serializer is not None:
            self._current = [self._serializer.deserialize(d) for d in raw_batch]
        else:
            self._current = raw_batch

    def _exhausted(self) -> bool:
        return self._pending is None and (
            self._cursor_id == 0 or self._limit_reached()
        )

    def _finish_close(self) -> None:
        self._cursor_id = 0
        self._lease.close()


class CommandCursor(_CommandCursorBase[T], _SyncCursorMixin[T]):
    """Blocking cursor over a cursor-producing command reply."""

    def move_next(self, cancellation_token: CancellationToken | None = None) -> bool:
        token = ensure_token(cancellation_token)
        self._check_advanceable()
        while True:
            if self._pending is not None:
                batch, self._pending = self._pending, None
                if batch and not self._limit_reached():
                    self._publish(batch)
                    return True
            if self._exhausted():
                return False
            token.raise_if_cancelled()
            try:
                reply = self._lease.channel.command(
                    self._namespace.database_name,
                    self._get_more_command(),
                    self._encoder_settings,
                    token,
                )
                token.raise_if_cancelled()
            except BaseException:
                self._aborted = True
                raise
            self._pending = self._take_next_batch(reply)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._cursor_id != 0:
                try:
                    self._lease.channel.command(
                        self._namespace.database_name,
                        self._kill_cursors_command(),
                        self._encoder_settings,
                        ensure_token(None),
                    )
                except MongoOperationError as e:
                    logger.debug("Failed to kill cursor %d: %s", self._cursor_id, e)
        finally:
            self._finish_close()


class AsyncCommandCursor(_CommandCursorBase[T], _AsyncCursorMixin[T]):
    """Cooperative cursor over a cursor-producing command reply."""

    async def move_next_async(
        self, cancellation_token: CancellationToken | None = None
    ) -> bool:
        token = ensure_token(cancellation_token)
        self._check_advanceable()
        while True:
            if self._pending is not None:
                batch, self._pending = self._pending, None
                if batch and not self._limit_reached():
                    self._publish(batch)
                    return True
            if self._exhausted():
                return False
            try:
                token.raise_if_cancelled()
                reply = await token.run(
                    self._lease.channel.command_async(
                        self._namespace.database_name,
                        self._get_more_command(),
                        self._encoder_settings,
                        token,
                    )
                )
                token.raise_if_cancelled()
            except BaseException:
                self._aborted = True
                raise
            self._pending = self._take_next_batch(reply)

    def close(self) -> None:
        """Release the cursor.

        ``close`` is synchronous so that it can run from ``finally`` blocks
        and ``with`` statements; a still-open server cursor is left to the
        server's idle timeout. Use :meth:`close_async` to kill it eagerly.
        """
        if self._closed:
            return
        self._closed = True
        self._finish_close()

    async def close_async(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._cursor_id != 0:
                try:
                    await self._lease.channel.command_async(
                        self._namespace.database_name,
                        self._kill_cursors_command(),
                        self._encoder_settings,
                        ensure_token(None),
                    )
                except MongoOperationError as e:
                    logger.debug("Failed to kill cursor %d: %s", self._cursor_id, e)
        finally:
            self._finish_close()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close_async()


class ListCursor(_SyncCursorMixin[T], _AsyncCursorMixin[T]):
    """A cursor over batches that are already in memory."""

    def __init__(self, batches: Iterable[Sequence[T]] = ()) -> None:
        self._batches = [list(batch) for batch in batches]
        self._index = -1
        self._closed = False

    def move_next(self, cancellation_token: CancellationToken | None = None) -> bool:
        if self._closed:
            raise CursorClosedError("Cursor has been closed")
        ensure_token(cancellation_token).raise_if_cancelled()
        if self._index + 1 >= len(self._batches):
            self._index = len(self._batches)
            return False
        self._index += 1
        return True

    async def move_next_async(
        self, cancellation_token: CancellationToken | None = None
    ) -> bool:
        return self.move_next(cancellation_token)

    @property
    def current(self) -> list[T]:
        if not 0 <= self._index < len(self._batches):
            raise CursorStateError("move_next() has not produced a batch")
        return self._batches[self._index]

    def close(self) -> None:
        self._closed = True


# ── Transforming cursor ──────────────────────────────────────────────


class _BatchTransformingBase(Generic[TSource, TTarget]):
    def __init__(
        self,
        inner: Any,
        transform: Callable[[list[TSource]], Iterable[TTarget]],
    ) -> None:
        if inner is None:
            raise InvalidArgumentError("inner")
        if transform is None:
            raise InvalidArgumentError("transform")
        self._inner = inner
        self._transform = transform
        self._batch: list[TSource] | None = None
        self._transformed: list[TTarget] | None = None
        self._closed = False
        self._aborted = False

    @property
    def current(self) -> list[TTarget]:
        """The current batch, transformed on first access and then cached."""
        if self._closed:
            raise CursorClosedError("Cursor has been closed")
        if self._batch is None:
            raise CursorStateError("move_next() has not produced a batch")
        if self._transformed is None:
            self._transformed = list(self._transform(self._batch))
        return self._transformed

    def _check_open(self) -> None:
        if self._closed:
            raise CursorClosedError("Cursor has been closed")
        if self._aborted:
            raise CursorClosedError("Cursor was aborted by a failed fetch")

    def _accept(self, has_more: bool) -> bool:
        if has_more:
            self._batch = list(self._inner.current)
        else:
            self._batch = None
        self._transformed = None
        return has_more

    def close(self) -> None:
        """Close the inner cursor exactly once."""
        if self._closed:
            return
        self._closed = True
        self._inner.close()


class BatchTransformingCursor(
    _BatchTransformingBase[TSource, TTarget], _SyncCursorMixin[TTarget]
):
    """Applies ``transform`` to every batch of a blocking inner cursor.

    The wrapper owns ``inner``. A fetch that fails (including by
    cancellation) leaves :attr:`current` on the previous batch.
    """

    def __init__(
        self,
        inner: BatchCursor[TSource],
        transform: Callable[[list[TSource]], Iterable[TTarget]],
    ) -> None:
        super().__init__(inner, transform)

    def move_next(self, cancellation_token: CancellationToken | None = None) -> bool:
        self._check_open()
        try:
            has_more = self._inner.move_next(cancellation_token)
        except BaseException:
            self._aborted = True
            raise
        return self._accept(has_more)


class AsyncBatchTransformingCursor(
    _BatchTransformingBase[TSource, TTarget], _AsyncCursorMixin[TTarget]
):
    """Cooperative counterpart of :class:`BatchTransformingCursor`."""

    def __init__(
        self,
        inner: AsyncBatchCursor[TSource],
        transform: Callable[[list[TSource]], Iterable[TTarget]],
    ) -> None:
        super().__init__(inner, transform)

    async def move_next_async(
        self, cancellation_token: CancellationToken | None = None
    ) -> bool:
        self._check_open()
        try:
            has_more = await self._inner.move_next_async(cancellation_token)
        except BaseException:
            self._aborted = True
            raise
        return self._accept(has_more)

    async def close_async(self) -> None:
        if self._closed:
            return
        self._closed = True
        await _close_async(self._inner)

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close_async()


# ── Consumers ────────────────────────────────────────────────────────


async def _close_async(cursor: Any) -> None:
    close_async = getattr(cursor, "close_async", None)
    if close_async is not None:
        await close_async()
    else:
        cursor.close()


def to_list(
    cursor: BatchCursor[T], cancellation_token: CancellationToken | None = None
) -> list[T]:
    """Drain ``cursor`` into one list and close it."""
    try:
        documents: list[T] = []
        while cursor.move_next(cancellation_token):
            documents.extend(cursor.current)
        return documents
    finally:
        cursor.close()


async def to_list_async(
    cursor: AsyncBatchCursor[T], cancellation_token: CancellationToken | None = None
) -> list[T]:
    try:
        documents: list[T] = []
        while await cursor.move_next_async(cancellation_token):
            documents.extend(cursor.current)
        return documents
    finally:
        await _close_async(cursor)


def first_or_none(
    cursor: BatchCursor[T], cancellation_token: CancellationToken | None = None
) -> T | None:
    """Return the first document, or None when there is none; closes the cursor."""
    try:
        while cursor.move_next(cancellation_token):
            if cursor.current:
                return cursor.current[0]
        return None
    finally:
        cursor.close()


async def first_or_none_async(
    cursor: AsyncBatchCursor[T], cancellation_token: CancellationToken | None = None
) -> T | None:
    try:
        while await cursor.move_next_async(cancellation_token):
            if cursor.current:
                return cursor.current[0]
        return None
    finally:
        await _close_async(cursor)
