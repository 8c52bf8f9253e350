"""InMemoryServer — a dict-backed server speaking the read commands we use.

Replies are round-tripped through BSON so callers never share mutable
state with the server, and so encoder settings apply as they would on the
wire. Intended for unit tests and demos.
"""

from __future__ import annotations

import asyncio
import itertools
import re
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import bson
from bson.int64 import Int64
from bson.regex import Regex

from ..exceptions import COMMAND_NOT_FOUND, ServerSelectionError, check_reply
from ..namespace import SYSTEM_NAMESPACES
from ..ports.binding import ServerDescription

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from ..cancellation import CancellationToken
    from ..settings import MessageEncoderSettings

DEFAULT_FIRST_BATCH_SIZE = 101
CURSOR_NOT_FOUND = 43


@dataclass
class _FailPoint:
    command_name: str
    times: int
    error_code: int | None = None
    error_message: str = "Fail point triggered"
    exception: BaseException | None = None


@dataclass
class _ServerCursor:
    namespace: str
    remaining: list[dict[str, Any]] = field(default_factory=list)


def _error(code: int, code_name: str, message: str) -> dict[str, Any]:
    return {"ok": 0, "code": code, "codeName": code_name, "errmsg": message}


def _matches_value(value: Any, condition: Any) -> bool:
    if isinstance(condition, Regex):
        condition = condition.try_compile()
    if isinstance(condition, re.Pattern):
        return isinstance(value, str) and condition.search(value) is not None
    if isinstance(condition, dict) and condition and all(
        k.startswith("$") for k in condition
    ):
        for op, operand in condition.items():
            if op == "$eq" and value != operand:
                return False
            if op == "$ne" and value == operand:
                return False
            if op == "$in" and value not in operand:
                return False
            if op == "$nin" and value in operand:
                return False
            if op == "$exists" and (value is not _MISSING) != bool(operand):
                return False
            if op == "$regex" and not _matches_value(value, re.compile(operand)):
                return False
        return True
    return value == condition


_MISSING = object()


def matches(document: Mapping[str, Any], filter: Mapping[str, Any] | None) -> bool:
    """Top-level field matching: equality, regex and a few operators."""
    if not filter:
        return True
    return all(
        _matches_value(document.get(key, _MISSING), condition)
        for key, condition in filter.items()
    )


def _project(
    document: dict[str, Any], projection: Mapping[str, Any] | None
) -> dict[str, Any]:
    if not projection:
        return document
    include_id = projection.get("_id", 1)
    fields = [k for k, v in projection.items() if v and k != "_id"]
    if not fields:
        return {k: v for k, v in document.items() if projection.get(k, 1)}
    projected = {k: document[k] for k in fields if k in document}
    if include_id and "_id" in document:
        projected = {"_id": document["_id"], **projected}
    return projected


def _sort(
    documents: list[dict[str, Any]], sort: Mapping[str, Any] | None
) -> list[dict[str, Any]]:
    for key, direction in reversed(list((sort or {}).items())):
        documents = sorted(
            documents,
            key=lambda d, k=key: (d.get(k) is None, d.get(k)),
            reverse=direction < 0,
        )
    return documents


class InMemoryServer:
    """A single in-process server.

    ``max_wire_version`` below 3 makes it behave like a pre-3.0 server
    without ``listCollections``. Set ``available = False`` to make server
    selection fail, and use :meth:`fail_command` to inject command errors.
    """

    def __init__(
        self,
        *,
        address: str = "memory:27017",
        max_wire_version: int = 17,
    ) -> None:
        self.address = address
        self.max_wire_version = max_wire_version
        self.available = True
        self.before_command: Callable[[str, Mapping[str, Any]], None] | None = None
        self.commands: list[tuple[str, dict[str, Any]]] = []
        self._collections: dict[str, list[dict[str, Any]]] = {}
        self._cursors: dict[int, _ServerCursor] = {}
        self._cursor_ids = itertools.count(1)
        self._fail_points: list[_FailPoint] = []
        self._lock = threading.Lock()

    # -- data ------------------------------------------------------------

    @property
    def description(self) -> ServerDescription:
        return ServerDescription(
            address=self.address, max_wire_version=self.max_wire_version
        )

    @property
    def open_cursors(self) -> int:
        return len(self._cursors)

    def create_collection(
        self, database: str, name: str, options: Mapping[str, Any] | None = None
    ) -> None:
        """Create a collection and record it, with its _id index, in the catalog."""
        namespace = f"{database}.{name}"
        if namespace in self._collections:
            return
        self._collections[namespace] = []
        catalog = self._collections.setdefault(f"{database}.{SYSTEM_NAMESPACES}", [])
        catalog.append({"name": namespace, "options": dict(options or {})})
        catalog.append({"name": f"{namespace}.$_id_"})

    def insert(self, namespace: str, documents: Iterable[Mapping[str, Any]]) -> None:
        """Append raw documents to ``namespace`` (no catalog bookkeeping)."""
        self._collections.setdefault(namespace, []).extend(
            dict(d) for d in documents
        )

    def fail_command(
        self,
        command_name: str,
        *,
        times: int = 1,
        error_code: int | None = None,
        error_message: str = "Fail point triggered",
        exception: BaseException | None = None,
    ) -> None:
        """Make the next ``times`` runs of ``command_name`` fail.

        Either answers with ``ok: 0`` and ``error_code`` or raises
        ``exception`` as a broken connection would.
        """
        self._fail_points.append(
            _FailPoint(command_name, times, error_code, error_message, exception)
        )

    # -- commands --------------------------------------------------------

    def run_command(self, database: str, command: Mapping[str, Any]) -> dict[str, Any]:
        name = next(iter(command))
        with self._lock:
            self.commands.append((database, dict(command)))
        if self.before_command is not None:
            self.before_command(name, command)
        failure = self._take_fail_point(name)
        if failure is not None:
            if failure.exception is not None:
                raise failure.exception
            return _error(failure.error_code or 8, "FailPoint", failure.error_message)
        handler = getattr(self, f"_cmd_{name}", None)
        if handler is None:
            return _error(
                COMMAND_NOT_FOUND, "CommandNotFound", f"no such command: '{name}'"
            )
        with self._lock:
            result: dict[str, Any] = handler(database, command)
            return result

    def _take_fail_point(self, name: str) -> _FailPoint | None:
        with self._lock:
            for fail_point in self._fail_points:
                if fail_point.command_name == name and fail_point.times > 0:
                    fail_point.times -= 1
                    return fail_point
        return None

    def _cmd_hello(self, database: str, command: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "isWritablePrimary": True,
            "maxWireVersion": self.max_wire_version,
            "minWireVersion": 0,
            "ok": 1,
        }

    def _cmd_ping(self, database: str, command: Mapping[str, Any]) -> dict[str, Any]:
        return {"ok": 1}

    def _cmd_find(self, database: str, command: Mapping[str, Any]) -> dict[str, Any]:
        namespace = f"{database}.{command['find']}"
        documents = [
            d
            for d in self._collections.get(namespace, [])
            if matches(d, command.get("filter"))
        ]
        documents = _sort(documents, command.get("sort"))
        skip = command.get("skip", 0)
        documents = documents[skip:]
        if command.get("limit"):
            documents = documents[: command["limit"]]
        documents = [_project(d, command.get("projection")) for d in documents]
        batch_size = command.get("batchSize", DEFAULT_FIRST_BATCH_SIZE)
        single_batch = bool(command.get("singleBatch"))
        return self._open_cursor(namespace, documents, batch_size, single_batch)

    def _cmd_listCollections(  # noqa: N802
        self, database: str, command: Mapping[str, Any]
    ) -> dict[str, Any]:
        if self.max_wire_version < 3:
            return _error(
                COMMAND_NOT_FOUND,
                "CommandNotFound",
                "no such command: 'listCollections'",
            )
        prefix = f"{database}."
        entries = []
        for namespace in self._collections:
            if not namespace.startswith(prefix):
                continue
            name = namespace[len(prefix) :]
            if name.startswith("system."):
                continue
            entry: dict[str, Any] = {"name": name, "type": "collection"}
            if not command.get("nameOnly"):
                entry["options"] = {}
                entry["info"] = {"readOnly": False}
            entries.append(entry)
        entries = [e for e in entries if matches(e, command.get("filter"))]
        batch_size = command.get("cursor", {}).get(
            "batchSize", DEFAULT_FIRST_BATCH_SIZE
        )
        return self._open_cursor(
            f"{database}.$cmd.listCollections", entries, batch_size, False
        )

    def _cmd_getMore(  # noqa: N802
        self, database: str, command: Mapping[str, Any]
    ) -> dict[str, Any]:
        cursor_id = int(command["getMore"])
        cursor = self._cursors.get(cursor_id)
        if cursor is None:
            return _error(
                CURSOR_NOT_FOUND, "CursorNotFound", f"cursor id {cursor_id} not found"
            )
        batch_size = command.get("batchSize") or len(cursor.remaining)
        batch = cursor.remaining[:batch_size]
        cursor.remaining = cursor.remaining[batch_size:]
        if not cursor.remaining:
            del self._cursors[cursor_id]
            cursor_id = 0
        return {
            "cursor": {
                "id": Int64(cursor_id),
                "ns": cursor.namespace,
                "nextBatch": batch,
            },
            "ok": 1,
        }

    def _cmd_killCursors(  # noqa: N802
        self, database: str, command: Mapping[str, Any]
    ) -> dict[str, Any]:
        killed = []
        for cursor_id in command.get("cursors", []):
            if self._cursors.pop(int(cursor_id), None) is not None:
                killed.append(cursor_id)
        return {"cursorsKilled": killed, "ok": 1}

    def _open_cursor(
        self,
        namespace: str,
        documents: list[dict[str, Any]],
        batch_size: int,
        single_batch: bool,
    ) -> dict[str, Any]:
        first = documents[:batch_size] if batch_size else documents
        remaining = documents[len(first) :]
        cursor_id = 0
        if remaining and not single_batch:
            cursor_id = next(self._cursor_ids)
            self._cursors[cursor_id] = _ServerCursor(namespace, remaining)
        return {
            "cursor": {"id": Int64(cursor_id), "ns": namespace, "firstBatch": first},
            "ok": 1,
        }


class InMemoryChannel:
    """Channel to an :class:`InMemoryServer`, usable from both paths."""

    def __init__(self, source: InMemoryChannelSource) -> None:
        self._source = source
        self.closed = False

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
        server = self._source.server
        request = bson.decode(bson.encode(command))
        reply = server.run_command(database_name, request)
        decoded: dict[str, Any] = bson.decode(
            bson.encode(reply), codec_options=encoder_settings.codec_options()
        )
        cancellation_token.raise_if_cancelled()
        return check_reply(decoded)

    async def command_async(
        self,
        database_name: str,
        command: Mapping[str, Any],
        encoder_settings: MessageEncoderSettings,
        cancellation_token: CancellationToken,
    ) -> dict[str, Any]:
        await asyncio.sleep(self._source.server_latency)
        return self.command(
            database_name, command, encoder_settings, cancellation_token
        )

    def close(self) -> None:
        self.closed = True


class InMemoryChannelSource:
    def __init__(self, binding: InMemoryReadBinding) -> None:
        self._binding = binding
        self.server = binding.server
        self.server_latency = binding.server_latency

    @property
    def server_description(self) -> ServerDescription:
        return self.server.description

    def get_channel(self, cancellation_token: CancellationToken) -> InMemoryChannel:
        cancellation_token.raise_if_cancelled()
        return InMemoryChannel(self)

    async def get_channel_async(
        self, cancellation_token: CancellationToken
    ) -> InMemoryChannel:
        return self.get_channel(cancellation_token)

    def close(self) -> None:
        self._binding.sources_released += 1


class InMemoryReadBinding:
    """Binding to an :class:`InMemoryServer` for both execution paths.

    Counts acquired and released channel sources so tests can assert that
    every lease is released exactly once.
    """

    def __init__(
        self,
        server: InMemoryServer,
        *,
        read_preference: str = "primary",
        server_latency: float = 0.0,
    ) -> None:
        self.server = server
        self.server_latency = server_latency
        self._read_preference = read_preference
        self.sources_acquired = 0
        self.sources_released = 0

    @property
    def read_preference(self) -> str:
        return self._read_preference

    @property
    def outstanding_leases(self) -> int:
        return self.sources_acquired - self.sources_released

    def get_read_channel_source(
        self, cancellation_token: CancellationToken
    ) -> InMemoryChannelSource:
        cancellation_token.raise_if_cancelled()
        if not self.server.available:
            raise ServerSelectionError(
                f"No server is available for read preference {self._read_preference}"
            )
        self.sources_acquired += 1
        return InMemoryChannelSource(self)

    async def get_read_channel_source_async(
        self, cancellation_token: CancellationToken
    ) -> InMemoryChannelSource:
        await asyncio.sleep(0)
        return self.get_read_channel_source(cancellation_token)
