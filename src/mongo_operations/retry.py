"""Single-retry execution for read operations.

A read is attempted once; if it fails with a transient error and the
context was created with ``retry_requested``, a fresh lease is acquired
and the read is attempted exactly one more time. The second failure is
the one the caller sees.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, TypeVar

from .cancellation import ensure_token
from .exceptions import TransientError
from .settings import DEFAULT_RETRY_SETTINGS

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .cancellation import CancellationToken
    from .context import RetryableReadContext
    from .settings import RetrySettings

logger = logging.getLogger("mongo_operations.retry")

T = TypeVar("T")


def is_retryable_read_error(error: BaseException) -> bool:
    """Server selection, network and not-primary failures are retryable."""
    return isinstance(error, TransientError)


def _should_retry(context: RetryableReadContext, error: Exception) -> bool:
    return context.retry_requested and is_retryable_read_error(error)


def execute_with_retry(
    context: RetryableReadContext,
    attempt: Callable[[RetryableReadContext], T],
    cancellation_token: CancellationToken | None = None,
    settings: RetrySettings | None = None,
) -> T:
    """Run ``attempt`` on ``context``, retrying once on a transient failure."""
    token = ensure_token(cancellation_token)
    settings = settings or DEFAULT_RETRY_SETTINGS
    try:
        return attempt(context)
    except Exception as exc:
        if not _should_retry(context, exc):
            raise
        logger.warning("Retrying read after transient failure: %s", exc)
    if settings.backoff_seconds > 0:
        time.sleep(settings.backoff_seconds)
    token.raise_if_cancelled()
    context.reacquire(token)
    return attempt(context)


async def execute_with_retry_async(
    context: RetryableReadContext,
    attempt: Callable[[RetryableReadContext], Awaitable[T]],
    cancellation_token: CancellationToken | None = None,
    settings: RetrySettings | None = None,
) -> T:
    """Cooperative counterpart of :func:`execute_with_retry`."""
    token = ensure_token(cancellation_token)
    settings = settings or DEFAULT_RETRY_SETTINGS
    try:
        return await attempt(context)
    except Exception as exc:
        if not _should_retry(context, exc):
            raise
        logger.warning("Retrying read after transient failure: %s", exc)
    if settings.backoff_seconds > 0:
        await token.run(asyncio.sleep(settings.backoff_seconds))
    token.raise_if_cancelled()
    await context.reacquire_async(token)
    return await attempt(context)
