"""Blocking binding over a pymongo ``MongoClient``."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pymongo import ReadPreference

from ..ports.binding import ServerDescription
from .errors import translate_errors

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pymongo import MongoClient

    from ..cancellation import CancellationToken
    from ..settings import MessageEncoderSettings

logger = logging.getLogger("mongo_operations.adapters.pymongo")


def describe_server(client: Any, hello: Mapping[str, Any]) -> ServerDescription:
    """Build a ServerDescription from a ``hello`` reply."""
    address = getattr(client, "address", None)
    return ServerDescription(
        address=f"{address[0]}:{address[1]}" if address else "unknown",
        max_wire_version=int(hello.get("maxWireVersion", 0)),
        min_wire_version=int(hello.get("minWireVersion", 0)),
    )


class PyMongoChannel:
    """Runs commands through ``Database.command``."""

    def __init__(self, source: PyMongoChannelSource) -> None:
        self._source = source

    @property
    def server_description(self) -> ServerDescription:
        return self._source.server_description

    def command(
        self,
        database_name: str,
        command: Mapping[str, Any],
        encoder_settings: MessageEncoderSettings,
        cancellation_token: CancellationToken,
    ) -> dict[str, Any]:
        cancellation_token.raise_if_cancelled()
        database = self._source.client.get_database(database_name)
        with translate_errors():
            reply: dict[str, Any] = database.command(
                command,
                read_preference=self._source.read_preference,
                codec_options=encoder_settings.codec_options(),
            )
        cancellation_token.raise_if_cancelled()
        return reply

    def close(self) -> None:
        """pymongo returns connections to its pool after each command."""


class PyMongoChannelSource:
    def __init__(
        self,
        client: MongoClient[Any],
        read_preference: Any,
        server_description: ServerDescription,
    ) -> None:
        self.client = client
        self.read_preference = read_preference
        self._server_description = server_description

    @property
    def server_description(self) -> ServerDescription:
        return self._server_description

    def get_channel(self, cancellation_token: CancellationToken) -> PyMongoChannel:
        cancellation_token.raise_if_cancelled()
        return PyMongoChannel(self)

    def close(self) -> None:
        logger.debug("Released %s", self._server_description.address)


class PyMongoReadBinding:
    """Selects a server with a ``hello`` round trip on every acquisition."""

    def __init__(
        self, client: MongoClient[Any], read_preference: Any = ReadPreference.PRIMARY
    ) -> None:
        self._client = client
        self._read_preference = read_preference

    @property
    def read_preference(self) -> Any:
        return self._read_preference

    def get_read_channel_source(
        self, cancellation_token: CancellationToken
    ) -> PyMongoChannelSource:
        cancellation_token.raise_if_cancelled()
        with translate_errors():
            hello = self._client.admin.command(
                "hello", read_preference=self._read_preference
            )
        cancellation_token.raise_if_cancelled()
        return PyMongoChannelSource(
            self._client, self._read_preference, describe_server(self._client, hello)
        )
