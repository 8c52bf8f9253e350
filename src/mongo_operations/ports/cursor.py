"""Cursor ports — lazily fetched sequences of batches."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from ..cancellation import CancellationToken

T_co = TypeVar("T_co", covariant=True)


@runtime_checkable
class BatchCursor(Protocol[T_co]):
    """A forward-only sequence of batches fetched on demand.

    Once :meth:`move_next` returns False the cursor is exhausted and cannot
    rewind. Callers must :meth:`close` it, also on early termination.
    """

    def move_next(self, cancellation_token: CancellationToken | None = None) -> bool:
        """Fetch the next batch; False when there are no more."""
        ...

    @property
    def current(self) -> list[T_co]:
        """The batch fetched by the last successful :meth:`move_next`."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class AsyncBatchCursor(Protocol[T_co]):
    """Cooperative counterpart of :class:`BatchCursor`."""

    async def move_next_async(
        self, cancellation_token: CancellationToken | None = None
    ) -> bool: ...

    @property
    def current(self) -> list[T_co]: ...

    def close(self) -> None: ...
