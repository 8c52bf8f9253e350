"""Binding ports — how operations reach a server.

A *binding* selects a server and hands out a *channel source* (a lease on
that server); the channel source opens *channels* (connections) that run
commands. Implementations live in :mod:`mongo_operations.adapters`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..cancellation import CancellationToken
    from ..settings import MessageEncoderSettings


@dataclass(frozen=True)
class ServerDescription:
    """What an operation may know about the server it was bound to."""

    address: str
    max_wire_version: int = 0
    min_wire_version: int = 0


@runtime_checkable
class Channel(Protocol):
    """A connection that runs commands synchronously."""

    @property
    def server_description(self) -> ServerDescription: ...

    def command(
        self,
        database_name: str,
        command: Mapping[str, Any],
        encoder_settings: MessageEncoderSettings,
        cancellation_token: CancellationToken,
    ) -> dict[str, Any]:
        """Run ``command`` and return the reply, raising on ``ok: 0``."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class AsyncChannel(Protocol):
    """A connection that runs commands cooperatively."""

    @property
    def server_description(self) -> ServerDescription: ...

    async def command_async(
        self,
        database_name: str,
        command: Mapping[str, Any],
        encoder_settings: MessageEncoderSettings,
        cancellation_token: CancellationToken,
    ) -> dict[str, Any]:
        """Run ``command`` and return the reply, raising on ``ok: 0``."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class ChannelSource(Protocol):
    """A lease on one selected server."""

    @property
    def server_description(self) -> ServerDescription: ...

    def get_channel(self, cancellation_token: CancellationToken) -> Channel: ...

    def close(self) -> None: ...


@runtime_checkable
class AsyncChannelSource(Protocol):
    @property
    def server_description(self) -> ServerDescription: ...

    async def get_channel_async(
        self, cancellation_token: CancellationToken
    ) -> AsyncChannel: ...

    def close(self) -> None: ...


@runtime_checkable
class ReadBinding(Protocol):
    """Selects a server for reads, blocking while it waits."""

    @property
    def read_preference(self) -> Any: ...

    def get_read_channel_source(
        self, cancellation_token: CancellationToken
    ) -> ChannelSource:
        """Select a server; raises ServerSelectionError when none is suitable."""
        ...


@runtime_checkable
class AsyncReadBinding(Protocol):
    """Selects a server for reads without blocking the event loop."""

    @property
    def read_preference(self) -> Any: ...

    async def get_read_channel_source_async(
        self, cancellation_token: CancellationToken
    ) -> AsyncChannelSource:
        """Select a server; raises ServerSelectionError when none is suitable."""
        ...
