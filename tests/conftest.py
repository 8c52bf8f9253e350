"""Shared fixtures: an in-memory server and both execution paths."""

from __future__ import annotations

from typing import Any

import pytest

from mongo_operations import (
    CancellationToken,
    MessageEncoderSettings,
    RetryableReadContext,
)
from mongo_operations.adapters import InMemoryReadBinding, InMemoryServer

pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
def server() -> InMemoryServer:
    return InMemoryServer()


@pytest.fixture
def legacy_server() -> InMemoryServer:
    """A server that predates listCollections (MongoDB 2.6, wire version 2)."""
    return InMemoryServer(max_wire_version=2)


@pytest.fixture
def binding(server: InMemoryServer) -> InMemoryReadBinding:
    return InMemoryReadBinding(server)


@pytest.fixture
def settings() -> MessageEncoderSettings:
    return MessageEncoderSettings()


class SyncPath:
    """Runs operations on the blocking path."""

    name = "sync"

    async def execute(
        self, operation: Any, binding: Any, token: CancellationToken | None = None
    ) -> Any:
        return operation.execute(binding, token)

    async def execute_in_context(
        self, operation: Any, context: Any, token: CancellationToken | None = None
    ) -> Any:
        return operation.execute_in_context(context, token)

    async def create_context(
        self, binding: Any, retry_requested: bool = False
    ) -> RetryableReadContext:
        return RetryableReadContext.create(binding, retry_requested)

    async def move_next(
        self, cursor: Any, token: CancellationToken | None = None
    ) -> bool:
        result: bool = cursor.move_next(token)
        return result

    async def drain(self, cursor: Any) -> list[list[Any]]:
        with cursor:
            return [list(batch) for batch in cursor]


class AsyncPath:
    """Runs operations on the cooperative path."""

    name = "async"

    async def execute(
        self, operation: Any, binding: Any, token: CancellationToken | None = None
    ) -> Any:
        return await operation.execute_async(binding, token)

    async def execute_in_context(
        self, operation: Any, context: Any, token: CancellationToken | None = None
    ) -> Any:
        return await operation.execute_in_context_async(context, token)

    async def create_context(
        self, binding: Any, retry_requested: bool = False
    ) -> RetryableReadContext:
        return await RetryableReadContext.create_async(binding, retry_requested)

    async def move_next(
        self, cursor: Any, token: CancellationToken | None = None
    ) -> bool:
        result: bool = await cursor.move_next_async(token)
        return result

    async def drain(self, cursor: Any) -> list[list[Any]]:
        async with cursor:
            return [list(batch) async for batch in cursor]


@pytest.fixture(params=[SyncPath, AsyncPath], ids=["sync", "async"])
def path(request: pytest.FixtureRequest) -> SyncPath | AsyncPath:
    """Each test using this fixture runs once per execution path."""
    return request.param()
