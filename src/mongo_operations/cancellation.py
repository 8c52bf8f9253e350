"""CancellationToken — cooperative cancellation shared by both execution paths."""

from __future__ import annotations

import asyncio
import contextlib
import threading
from typing import TYPE_CHECKING, Any, TypeVar

from .exceptions import OperationCancelledError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")


class CancellationToken:
    """A one-shot signal checked at every suspension point.

    Blocking code polls it with :meth:`raise_if_cancelled`; coroutines run
    their awaits through :meth:`run` so a pending network wait is
    interrupted as soon as the token fires.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: list[Callable[[], Any]] = []

    @classmethod
    def none(cls) -> CancellationToken:
        """A fresh token nobody else holds, so it never fires."""
        return cls()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Signal cancellation. Idempotent."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def register(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """Call ``callback`` on cancellation; returns an unregister function."""
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)

                def _unregister() -> None:
                    with self._lock, contextlib.suppress(ValueError):
                        self._callbacks.remove(callback)

                return _unregister
        callback()
        return lambda: None

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError("The operation was cancelled.")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``, aborting it if the token fires first."""
        self.raise_if_cancelled()
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(awaitable)

        def _on_cancel() -> None:
            loop.call_soon_threadsafe(task.cancel)

        unregister = self.register(_on_cancel)
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise OperationCancelledError(
                    "The operation was cancelled."
                ) from None
            raise
        finally:
            unregister()


def ensure_token(token: CancellationToken | None) -> CancellationToken:
    return token if token is not None else CancellationToken.none()
