"""Unit tests for MongoConnectionManager (without real MongoDB)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo import errors as pymongo_errors

from mongo_operations import MongoConnectionError, MongoConnectionManager
from mongo_operations.adapters.motor_binding import MotorReadBinding
from mongo_operations.adapters.pymongo_binding import PyMongoReadBinding


def test_client_raises_before_connect() -> None:
    mgr = MongoConnectionManager(url="mongodb://localhost:27017")
    with pytest.raises(MongoConnectionError, match="Not connected"):
        _ = mgr.client
    with pytest.raises(MongoConnectionError, match="Not connected"):
        _ = mgr.sync_client


def test_close_idempotent() -> None:
    mgr = MongoConnectionManager()
    mgr.close()  # idempotent when not connected
    mgr.close()


def test_connect_sync_passes_timeouts() -> None:
    with patch("mongo_operations.connection.MongoClient") as client_cls:
        mgr = MongoConnectionManager(
            "mongodb://db:27017", server_selection_timeout_ms=100, appname="ops"
        )
        client = mgr.connect_sync()

        assert mgr.connect_sync() is client
        client_cls.assert_called_once_with(
            "mongodb://db:27017",
            serverSelectionTimeoutMS=100,
            connectTimeoutMS=10000,
            appname="ops",
        )
        assert isinstance(mgr.read_binding(), PyMongoReadBinding)

        mgr.close()
        client.close.assert_called_once()
        with pytest.raises(MongoConnectionError):
            _ = mgr.sync_client


def test_connect_sync_wraps_driver_errors() -> None:
    with patch(
        "mongo_operations.connection.MongoClient",
        side_effect=pymongo_errors.ConfigurationError("bad uri"),
    ):
        mgr = MongoConnectionManager("mongodb://")
        with pytest.raises(MongoConnectionError, match="bad uri"):
            mgr.connect_sync()


@pytest.mark.asyncio
async def test_connect_creates_motor_client_once() -> None:
    with patch("motor.motor_asyncio.AsyncIOMotorClient") as client_cls:
        mgr = MongoConnectionManager()
        client = await mgr.connect()

        assert await mgr.connect() is client
        assert mgr.client is client
        client_cls.assert_called_once()
        assert isinstance(await mgr.async_read_binding(), MotorReadBinding)


@pytest.mark.asyncio
async def test_health_check() -> None:
    mgr = MongoConnectionManager()
    assert await mgr.health_check() is False

    with patch("motor.motor_asyncio.AsyncIOMotorClient") as client_cls:
        client = MagicMock()
        client.admin.command = AsyncMock(return_value={"ok": 1})
        client_cls.return_value = client
        await mgr.connect()

        assert await mgr.health_check() is True

        client.admin.command.side_effect = pymongo_errors.AutoReconnect("down")
        assert await mgr.health_check() is False
