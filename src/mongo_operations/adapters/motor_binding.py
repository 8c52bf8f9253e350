"""Cooperative binding over a motor ``AsyncIOMotorClient``."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pymongo import ReadPreference

from .errors import translate_errors
from .pymongo_binding import describe_server

if TYPE_CHECKING:
    from collections.abc import Mapping

    from motor.motor_asyncio import AsyncIOMotorClient

    from ..cancellation import CancellationToken
    from ..ports.binding import ServerDescription
    from ..settings import MessageEncoderSettings

logger = logging.getLogger("mongo_operations.adapters.motor")


class MotorChannel:
    def __init__(self, source: MotorChannelSource) -> None:
        self._source = source

    @property
    def server_description(self) -> ServerDescription:
        return self._source.server_description

    async def command_async(
        self,
        database_name: str,
        command: Mapping[str, Any],
        encoder_settings: MessageEncoderSettings,
        cancellation_token: CancellationToken,
    ) -> dict[str, Any]:
        database = self._source.client.get_database(database_name)
        with translate_errors():
            reply: dict[str, Any] = await cancellation_token.run(
                database.command(
                    command,
                    read_preference=self._source.read_preference,
                    codec_options=encoder_settings.codec_options(),
                )
            )
        return reply

    def close(self) -> None:
        """Motor returns connections to its pool after each command."""


class MotorChannelSource:
    def __init__(
        self,
        client: AsyncIOMotorClient[Any],
        read_preference: Any,
        server_description: ServerDescription,
    ) -> None:
        self.client = client
        self.read_preference = read_preference
        self._server_description = server_description

    @property
    def server_description(self) -> ServerDescription:
        return self._server_description

    async def get_channel_async(
        self, cancellation_token: CancellationToken
    ) -> MotorChannel:
        cancellation_token.raise_if_cancelled()
        return MotorChannel(self)

    def close(self) -> None:
        logger.debug("Released %s", self._server_description.address)


class MotorReadBinding:
    """Selects a server with an awaited ``hello`` on every acquisition."""

    def __init__(
        self,
        client: AsyncIOMotorClient[Any],
        read_preference: Any = ReadPreference.PRIMARY,
    ) -> None:
        self._client = client
        self._read_preference = read_preference

    @property
    def read_preference(self) -> Any:
        return self._read_preference

    async def get_read_channel_source_async(
        self, cancellation_token: CancellationToken
    ) -> MotorChannelSource:
        with translate_errors():
            hello = await cancellation_token.run(
                self._client.admin.command(
                    "hello", read_preference=self._read_preference
                )
            )
        return MotorChannelSource(
            self._client, self._read_preference, describe_server(self._client, hello)
        )
