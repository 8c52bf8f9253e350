"""ReadOperation — the shape every read operation follows.

Each operation exposes four entry points:

* ``execute(binding)`` / ``execute_async(binding)`` create their own
  :class:`RetryableReadContext` and always close it;
* ``execute_in_context(context)`` / ``execute_in_context_async(context)``
  run inside a context the caller owns and never close it.

Handing an existing context to ``execute`` is a pass-through: it is
borrowed, not wrapped in a second context.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from ..cancellation import ensure_token
from ..context import RetryableReadContext
from ..cursors import AsyncCommandCursor, CommandCursor
from ..events import operation_scope
from ..exceptions import InvalidArgumentError
from ..retry import execute_with_retry, execute_with_retry_async

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..cancellation import CancellationToken
    from ..ports.binding import AsyncReadBinding, ReadBinding
    from ..ports.serializer import DocumentSerializer
    from ..settings import MessageEncoderSettings, RetrySettings

TResult = TypeVar("TResult")
TAsyncResult = TypeVar("TAsyncResult")


class ReadOperation(ABC, Generic[TResult, TAsyncResult]):
    """Base class for read operations.

    Subclasses implement :meth:`_execute` and :meth:`_execute_async`; the
    base class owns the context lifecycle and the operation scope.
    """

    operation_name: ClassVar[str] = "read"

    def __init__(
        self,
        message_encoder_settings: MessageEncoderSettings,
        *,
        retry_settings: RetrySettings | None = None,
    ) -> None:
        if message_encoder_settings is None:
            raise InvalidArgumentError("message_encoder_settings")
        self._message_encoder_settings = message_encoder_settings
        self.retry_settings = retry_settings
        self.retry_requested = False

    @property
    def message_encoder_settings(self) -> MessageEncoderSettings:
        return self._message_encoder_settings

    @property
    def namespace_label(self) -> str:
        """Namespace reported on the operation span."""
        return ""

    # -- entry points ----------------------------------------------------

    def execute(
        self,
        binding: ReadBinding | RetryableReadContext,
        cancellation_token: CancellationToken | None = None,
    ) -> TResult:
        if binding is None:
            raise InvalidArgumentError("binding")
        self._validate()
        token = ensure_token(cancellation_token)
        if isinstance(binding, RetryableReadContext):
            context = binding.borrow()
        else:
            context = RetryableReadContext.create(
                binding, self.retry_requested, token
            )
        with context:
            return self.execute_in_context(context, token)

    def execute_in_context(
        self,
        context: RetryableReadContext,
        cancellation_token: CancellationToken | None = None,
    ) -> TResult:
        if context is None:
            raise InvalidArgumentError("context")
        self._validate()
        with operation_scope(self.operation_name, namespace=self.namespace_label):
            return self._execute(context, ensure_token(cancellation_token))

    async def execute_async(
        self,
        binding: AsyncReadBinding | RetryableReadContext,
        cancellation_token: CancellationToken | None = None,
    ) -> TAsyncResult:
        if binding is None:
            raise InvalidArgumentError("binding")
        self._validate()
        token = ensure_token(cancellation_token)
        if isinstance(binding, RetryableReadContext):
            context = binding.borrow()
        else:
            context = await RetryableReadContext.create_async(
                binding, self.retry_requested, token
            )
        async with context:
            return await self.execute_in_context_async(context, token)

    async def execute_in_context_async(
        self,
        context: RetryableReadContext,
        cancellation_token: CancellationToken | None = None,
    ) -> TAsyncResult:
        if context is None:
            raise InvalidArgumentError("context")
        self._validate()
        token = ensure_token(cancellation_token)
        with operation_scope(self.operation_name, namespace=self.namespace_label):
            return await self._execute_async(context, token)

    # -- hooks -----------------------------------------------------------

    def _validate(self) -> None:
        """Reject requests that can never succeed, before any I/O."""

    @abstractmethod
    def _execute(
        self, context: RetryableReadContext, cancellation_token: CancellationToken
    ) -> TResult: ...

    @abstractmethod
    async def _execute_async(
        self, context: RetryableReadContext, cancellation_token: CancellationToken
    ) -> TAsyncResult: ...

    # -- cursor commands -------------------------------------------------

    def _run_cursor_command(
        self,
        context: RetryableReadContext,
        database_name: str,
        command: Mapping[str, Any],
        cancellation_token: CancellationToken,
        *,
        batch_size: int | None = None,
        limit: int | None = None,
        serializer: DocumentSerializer[Any] | None = None,
    ) -> CommandCursor[Any]:
        """Send a cursor-producing command, retrying once when allowed."""
        settings = self._message_encoder_settings

        def attempt(ctx: RetryableReadContext) -> CommandCursor[Any]:
            lease = ctx.fork_lease()
            try:
                reply = lease.channel.command(
                    database_name, command, settings, cancellation_token
                )
                cancellation_token.raise_if_cancelled()
                return CommandCursor(
                    lease,
                    reply,
                    settings,
                    batch_size=batch_size,
                    limit=limit,
                    serializer=serializer,
                )
            except BaseException:
                lease.close()
                raise

        return execute_with_retry(
            context, attempt, cancellation_token, self.retry_settings
        )

    async def _run_cursor_command_async(
        self,
        context: RetryableReadContext,
        database_name: str,
        command: Mapping[str, Any],
        cancellation_token: CancellationToken,
        *,
        batch_size: int | None = None,
        limit: int | None = None,
        serializer: DocumentSerializer[Any] | None = None,
    ) -> AsyncCommandCursor[Any]:
        settings = self._message_encoder_settings

        async def attempt(ctx: RetryableReadContext) -> AsyncCommandCursor[Any]:
            lease = ctx.fork_lease()
            try:
                reply = await cancellation_token.run(
                    lease.channel.command_async(
                        database_name, command, settings, cancellation_token
                    )
                )
                cancellation_token.raise_if_cancelled()
                return AsyncCommandCursor(
                    lease,
                    reply,
                    settings,
                    batch_size=batch_size,
                    limit=limit,
                    serializer=serializer,
                )
            except BaseException:
                lease.close()
                raise

        return await execute_with_retry_async(
            context, attempt, cancellation_token, self.retry_settings
        )
