"""RetryableReadContext — the channel lease behind one logical read."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from .cancellation import ensure_token
from .exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from types import TracebackType

    from .cancellation import CancellationToken
    from .ports.binding import (
        AsyncChannel,
        AsyncChannelSource,
        AsyncReadBinding,
        Channel,
        ChannelSource,
        ReadBinding,
        ServerDescription,
    )

logger = logging.getLogger("mongo_operations.context")


class _SharedLease:
    """Reference-counted ownership of a channel source and one channel."""

    def __init__(
        self,
        source: ChannelSource | AsyncChannelSource,
        channel: Channel | AsyncChannel,
    ) -> None:
        self.source = source
        self.channel = channel
        self._refs = 1
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            if self._refs == 0:
                raise RuntimeError("Lease has already been released")
            self._refs += 1

    def release(self) -> None:
        with self._lock:
            self._refs -= 1
            if self._refs > 0:
                return
        logger.debug(
            "Releasing channel to %s", self.source.server_description.address
        )
        try:
            self.channel.close()
        finally:
            self.source.close()


class ChannelLease:
    """A handle on a shared lease; closing it drops one reference.

    Cursors fork the context's lease so they can keep fetching batches
    after the context that produced them has been closed.
    """

    def __init__(self, shared: _SharedLease) -> None:
        self._shared = shared
        self._closed = False

    @property
    def channel(self) -> Any:
        return self._shared.channel

    @property
    def channel_source(self) -> Any:
        return self._shared.source

    @property
    def server_description(self) -> ServerDescription:
        return self._shared.source.server_description

    def fork(self) -> ChannelLease:
        self._shared.acquire()
        return ChannelLease(self._shared)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._shared.release()


class RetryableReadContext:
    """Owns the channel lease for one execution, across at most one retry.

    Use :meth:`create` or :meth:`create_async`; the context is a scoped
    resource and must be closed on every exit path::

        with RetryableReadContext.create(binding, retry_requested=True) as ctx:
            ...

    A context handed to an operation that must not close it is wrapped with
    :meth:`borrow`.
    """

    def __init__(
        self,
        binding: ReadBinding | AsyncReadBinding,
        retry_requested: bool,
    ) -> None:
        self._binding = binding
        self._retry_requested = retry_requested
        self._lease: ChannelLease | None = None
        self._closed = False

    # -- factories -------------------------------------------------------

    @classmethod
    def create(
        cls,
        binding: ReadBinding,
        retry_requested: bool = False,
        cancellation_token: CancellationToken | None = None,
    ) -> RetryableReadContext:
        """Select a server and open a channel, blocking while waiting."""
        _check_binding(binding)
        token = ensure_token(cancellation_token)
        token.raise_if_cancelled()
        context = cls(binding, retry_requested)
        context._acquire(token)
        return context

    @classmethod
    async def create_async(
        cls,
        binding: AsyncReadBinding,
        retry_requested: bool = False,
        cancellation_token: CancellationToken | None = None,
    ) -> RetryableReadContext:
        """Select a server and open a channel without blocking the loop."""
        _check_binding(binding)
        token = ensure_token(cancellation_token)
        token.raise_if_cancelled()
        context = cls(binding, retry_requested)
        await context._acquire_async(token)
        return context

    # -- properties ------------------------------------------------------

    @property
    def binding(self) -> Any:
        return self._binding

    @property
    def retry_requested(self) -> bool:
        return self._retry_requested

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def channel_source(self) -> Any:
        return self._current_lease().channel_source

    @property
    def channel(self) -> Any:
        return self._current_lease().channel

    @property
    def server_description(self) -> ServerDescription:
        return self._current_lease().server_description

    # -- lease management ------------------------------------------------

    def fork_lease(self) -> ChannelLease:
        """Take an extra reference on the current lease (for a cursor)."""
        return self._current_lease().fork()

    def reacquire(self, cancellation_token: CancellationToken | None = None) -> None:
        """Drop the current lease and acquire a fresh one from the binding."""
        token = ensure_token(cancellation_token)
        self._check_open()
        self._release_lease()
        token.raise_if_cancelled()
        self._acquire(token)

    async def reacquire_async(
        self, cancellation_token: CancellationToken | None = None
    ) -> None:
        token = ensure_token(cancellation_token)
        self._check_open()
        self._release_lease()
        token.raise_if_cancelled()
        await self._acquire_async(token)

    def borrow(self, retry_requested: bool | None = None) -> BorrowedReadContext:
        """Return a non-owning view, optionally with its own retry flag."""
        return BorrowedReadContext(self, retry_requested)

    def close(self) -> None:
        """Release the lease. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._release_lease()

    def _acquire(self, token: CancellationToken) -> None:
        binding: ReadBinding = self._binding  # type: ignore[assignment]
        source = binding.get_read_channel_source(token)
        try:
            token.raise_if_cancelled()
            channel = source.get_channel(token)
        except BaseException:
            source.close()
            raise
        logger.debug("Acquired channel to %s", source.server_description.address)
        self._lease = ChannelLease(_SharedLease(source, channel))

    async def _acquire_async(self, token: CancellationToken) -> None:
        binding: AsyncReadBinding = self._binding  # type: ignore[assignment]
        source = await token.run(binding.get_read_channel_source_async(token))
        try:
            channel = await token.run(source.get_channel_async(token))
        except BaseException:
            source.close()
            raise
        logger.debug("Acquired channel to %s", source.server_description.address)
        self._lease = ChannelLease(_SharedLease(source, channel))

    def _release_lease(self) -> None:
        lease, self._lease = self._lease, None
        if lease is not None:
            lease.close()

    def _current_lease(self) -> ChannelLease:
        self._check_open()
        if self._lease is None:
            raise RuntimeError("Context holds no channel lease")
        return self._lease

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Context has been closed")

    # -- scoped resource -------------------------------------------------

    def __enter__(self) -> RetryableReadContext:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    async def __aenter__(self) -> RetryableReadContext:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class BorrowedReadContext(RetryableReadContext):
    """A non-owning view of another context; closing it releases nothing."""

    def __init__(
        self, inner: RetryableReadContext, retry_requested: bool | None = None
    ) -> None:
        if retry_requested is None:
            retry_requested = inner.retry_requested
        if isinstance(inner, BorrowedReadContext):
            inner = inner._inner
        super().__init__(inner.binding, retry_requested)
        self._inner = inner

    @property
    def closed(self) -> bool:
        return self._inner.closed

    @property
    def channel_source(self) -> Any:
        return self._inner.channel_source

    @property
    def channel(self) -> Any:
        return self._inner.channel

    @property
    def server_description(self) -> ServerDescription:
        return self._inner.server_description

    def fork_lease(self) -> ChannelLease:
        return self._inner.fork_lease()

    def reacquire(self, cancellation_token: CancellationToken | None = None) -> None:
        self._inner.reacquire(cancellation_token)

    async def reacquire_async(
        self, cancellation_token: CancellationToken | None = None
    ) -> None:
        await self._inner.reacquire_async(cancellation_token)

    def close(self) -> None:
        self._closed = True


def _check_binding(binding: Any) -> None:
    if binding is None:
        raise InvalidArgumentError("binding")
    if isinstance(binding, RetryableReadContext):
        raise InvalidArgumentError(
            "binding",
            "A retryable read context cannot be nested inside another one; "
            "pass the existing context to execute_in_context instead.",
        )
