"""Exceptions raised by mongo-operations."""

from __future__ import annotations

from typing import Any


class MongoOperationError(Exception):
    """Root exception for every error raised by this package."""


class InvalidArgumentError(MongoOperationError, ValueError):
    """Raised when a required argument is missing or malformed.

    Always raised at construction or at the entry point, never retried.
    """

    def __init__(self, argument: str, message: str | None = None) -> None:
        self.argument = argument
        super().__init__(message or f"Value cannot be None: {argument}")


class NotSupportedError(MongoOperationError):
    """Raised when a request cannot be expressed for the connected server."""


class ProtocolViolationError(NotSupportedError):
    """Raised when a server reply does not have the expected shape."""


class CursorStateError(MongoOperationError, RuntimeError):
    """Raised when a cursor is used in a state that does not allow it."""


class CursorClosedError(CursorStateError):
    """Raised when a disposed or aborted cursor is advanced."""


class OperationCancelledError(MongoOperationError):
    """Raised when a cancellation token fires at a suspension point."""


class TransientError(MongoOperationError):
    """Base class for failures that are eligible for a single retry."""


class ServerSelectionError(TransientError):
    """Raised when no suitable server could be selected."""


class NetworkError(TransientError):
    """Raised when the connection to the server failed mid-operation."""


class MongoConnectionError(NetworkError):
    """Raised when a driver client cannot be created or is not connected."""


class NotWritablePrimaryError(TransientError):
    """Raised when the selected server stopped being a usable primary."""

    def __init__(self, message: str, code: int | None = None) -> None:
        self.code = code
        super().__init__(message)


class CommandError(MongoOperationError):
    """Raised when the server answers a command with ``ok: 0``."""

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        code_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.code_name = code_name
        self.details = details or {}
        super().__init__(message)


# ── Server error codes ───────────────────────────────────────────────

NOT_PRIMARY_CODES: frozenset[int] = frozenset(
    {
        10107,  # NotWritablePrimary
        13435,  # NotPrimaryNoSecondaryOk
        13436,  # NotPrimaryOrSecondary
        11600,  # InterruptedAtShutdown
        11602,  # InterruptedDueToReplStateChange
        189,  # PrimarySteppedDown
        91,  # ShutdownInProgress
    }
)

NETWORK_CODES: frozenset[int] = frozenset(
    {
        7,  # HostNotFound
        6,  # HostUnreachable
        89,  # NetworkTimeout
        9001,  # SocketException
    }
)

COMMAND_NOT_FOUND = 59


def error_from_reply(reply: dict[str, Any]) -> MongoOperationError:
    """Build the exception matching a failed command reply."""
    message = str(reply.get("errmsg", "command failed"))
    code = reply.get("code")
    if code in NOT_PRIMARY_CODES:
        return NotWritablePrimaryError(message, code=code)
    if code in NETWORK_CODES:
        return NetworkError(message)
    return CommandError(
        message,
        code=code,
        code_name=reply.get("codeName"),
        details=dict(reply),
    )


def check_reply(reply: dict[str, Any]) -> dict[str, Any]:
    """Return ``reply`` unchanged, or raise if it reports a failure."""
    if not reply.get("ok"):
        raise error_from_reply(reply)
    return reply
