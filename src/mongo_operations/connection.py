"""MongoConnectionManager — driver client lifecycle and read bindings."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pymongo import MongoClient, ReadPreference

from .adapters.errors import translate_errors
from .adapters.motor_binding import MotorReadBinding
from .adapters.pymongo_binding import PyMongoReadBinding
from .exceptions import MongoConnectionError, MongoOperationError

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorClient


class MongoConnectionManager:
    """Own a pymongo client (blocking path) and a motor client (async path)."""

    def __init__(
        self,
        url: str = "mongodb://localhost:27017",
        *,
        server_selection_timeout_ms: int = 5000,
        connect_timeout_ms: int = 10000,
        **kwargs: Any,
    ) -> None:
        self._url = url
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._connect_timeout_ms = connect_timeout_ms
        self._kwargs = kwargs
        self._client: AsyncIOMotorClient[Any] | None = None
        self._sync_client: MongoClient[Any] | None = None

    def _client_options(self) -> dict[str, Any]:
        return {
            "serverSelectionTimeoutMS": self._server_selection_timeout_ms,
            "connectTimeoutMS": self._connect_timeout_ms,
            **self._kwargs,
        }

    async def connect(self) -> AsyncIOMotorClient[Any]:
        """Create and cache the motor client. Idempotent."""
        if self._client is not None:
            return self._client
        from motor.motor_asyncio import AsyncIOMotorClient

        try:
            self._client = AsyncIOMotorClient(self._url, **self._client_options())
            return self._client
        except Exception as e:
            raise MongoConnectionError(str(e)) from e

    def connect_sync(self) -> MongoClient[Any]:
        """Create and cache the pymongo client. Idempotent."""
        if self._sync_client is not None:
            return self._sync_client
        try:
            self._sync_client = MongoClient(self._url, **self._client_options())
            return self._sync_client
        except Exception as e:
            raise MongoConnectionError(str(e)) from e

    @property
    def client(self) -> AsyncIOMotorClient[Any]:
        """Return the motor client; raises if not connected."""
        if self._client is None:
            raise MongoConnectionError("Not connected; call connect() first")
        return self._client

    @property
    def sync_client(self) -> MongoClient[Any]:
        if self._sync_client is None:
            raise MongoConnectionError("Not connected; call connect_sync() first")
        return self._sync_client

    def read_binding(
        self, read_preference: Any = ReadPreference.PRIMARY
    ) -> PyMongoReadBinding:
        return PyMongoReadBinding(self.connect_sync(), read_preference)

    async def async_read_binding(
        self, read_preference: Any = ReadPreference.PRIMARY
    ) -> MotorReadBinding:
        return MotorReadBinding(await self.connect(), read_preference)

    def close(self) -> None:
        """Close both clients. Idempotent."""
        if self._client is not None:
            self._client.close()
            self._client = None
        if self._sync_client is not None:
            self._sync_client.close()
            self._sync_client = None

    async def health_check(self) -> bool:
        """Ping the server; return True if reachable."""
        if self._client is None:
            return False
        try:
            with translate_errors():
                await self._client.admin.command("ping")
            return True
        except MongoOperationError:
            return False
