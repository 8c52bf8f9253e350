"""Tests for listing collections on modern and legacy servers."""

from __future__ import annotations

import re
from typing import Any

import pytest
from bson.regex import Regex

from mongo_operations import (
    DatabaseNamespace,
    InvalidArgumentError,
    ListCollectionsOperation,
    ListCollectionsUsingCommandOperation,
    ListCollectionsUsingQueryOperation,
    MessageEncoderSettings,
    NetworkError,
    NotSupportedError,
    ProtocolViolationError,
)
from mongo_operations.adapters import InMemoryReadBinding, InMemoryServer
from mongo_operations.operations import Supported, Unsupported, normalize_catalog_batch
from mongo_operations.ports import ServerDescription

DB = DatabaseNamespace("db")


def _names(batches: list[list[dict[str, Any]]]) -> list[str]:
    return [doc["name"] for batch in batches for doc in batch]


def _full_entry(name: str) -> dict[str, Any]:
    return {
        "name": name,
        "type": "collection",
        "options": {},
        "info": {"readOnly": False},
    }


def _catalog_server(*entries: dict[str, Any]) -> InMemoryServer:
    server = InMemoryServer(max_wire_version=2)
    server.insert("db.system.namespaces", entries)
    return server


class TestLegacyFilterTranslation:
    def test_filter_without_name_is_passed_through(
        self, settings: MessageEncoderSettings
    ) -> None:
        op = ListCollectionsUsingQueryOperation(DB, settings)
        original = {"options.capped": True}
        op.filter = original

        assert op.create_legacy_filter() is original
        assert original == {"options.capped": True}

    def test_no_filter(self, settings: MessageEncoderSettings) -> None:
        op = ListCollectionsUsingQueryOperation(DB, settings)
        assert op.create_legacy_filter() is None

    def test_name_is_prefixed_on_a_copy(self, settings: MessageEncoderSettings) -> None:
        op = ListCollectionsUsingQueryOperation(DB, settings)
        original = {"name": "foo", "options.capped": True}
        op.filter = original

        translated = op.create_legacy_filter()

        assert translated == {"name": "db.foo", "options.capped": True}
        assert translated is not original
        assert original == {"name": "foo", "options.capped": True}
        assert list(translated) == ["name", "options.capped"]

    def test_already_qualified_name_is_still_prefixed(
        self, settings: MessageEncoderSettings
    ) -> None:
        op = ListCollectionsUsingQueryOperation(DB, settings)
        op.filter = {"name": "db.foo"}

        assert op.create_legacy_filter() == {"name": "db.db.foo"}

    @pytest.mark.parametrize(
        "value",
        [Regex("^foo"), re.compile("^foo"), {"$in": ["a", "b"]}, 42, None],
        ids=["bson-regex", "pattern", "document", "int", "null"],
    )
    def test_non_string_name_is_not_supported(
        self, settings: MessageEncoderSettings, value: Any
    ) -> None:
        op = ListCollectionsUsingQueryOperation(DB, settings)
        op.filter = {"name": value}

        with pytest.raises(NotSupportedError, match="plain string"):
            op.create_legacy_filter()

    def test_find_operation_targets_catalog(
        self, settings: MessageEncoderSettings
    ) -> None:
        op = ListCollectionsUsingQueryOperation(DB, settings)
        op.filter = {"name": "foo"}
        op.retry_requested = True
        op.batch_size = 7

        find = op.create_find_operation()

        assert find.collection_namespace.full_name == "db.system.namespaces"
        assert find.filter == {"name": "db.foo"}
        assert find.retry_requested is True
        assert find.batch_size == 7
        assert find.message_encoder_settings is settings


class TestCatalogNormalisation:
    def test_keeps_only_collections_of_this_database(self) -> None:
        batch = [
            {"name": "db.users"},
            {"name": "db.users.$id_idx"},
            {"name": "other.users"},
        ]

        assert list(normalize_catalog_batch(DB, batch)) == [{"name": "users"}]

    def test_preserves_order_and_other_fields(self) -> None:
        batch = [
            {"name": "db.b", "options": {"capped": True}},
            {"name": "db.a", "options": {}},
            {"name": "db.$freelist"},
        ]

        result = list(normalize_catalog_batch(DB, batch))

        assert result == [
            {"name": "b", "options": {"capped": True}},
            {"name": "a", "options": {}},
        ]

    def test_does_not_modify_input_documents(self) -> None:
        document = {"name": "db.users"}

        list(normalize_catalog_batch(DB, [document]))

        assert document == {"name": "db.users"}

    def test_database_name_prefix_must_end_at_dot(self) -> None:
        batch = [{"name": "dbx.users"}, {"name": "db.users"}]

        assert list(normalize_catalog_batch(DB, batch)) == [{"name": "users"}]

    def test_non_string_name_is_a_protocol_violation(self) -> None:
        with pytest.raises(ProtocolViolationError):
            list(normalize_catalog_batch(DB, [{"name": 12}]))

    def test_missing_name_is_a_protocol_violation(self) -> None:
        with pytest.raises(ProtocolViolationError):
            list(normalize_catalog_batch(DB, [{"options": {}}]))


class TestListCollectionsUsingQuery:
    @pytest.mark.asyncio
    async def test_catalog_example(
        self, path: Any, settings: MessageEncoderSettings
    ) -> None:
        server = _catalog_server(
            {"name": "db.users"}, {"name": "db.users.$id_idx"}, {"name": "other.users"}
        )
        binding = InMemoryReadBinding(server)
        op = ListCollectionsUsingQueryOperation(DB, settings)

        batches = await path.drain(await path.execute(op, binding))

        assert batches == [[{"name": "users"}]]
        assert binding.outstanding_leases == 0

    @pytest.mark.asyncio
    async def test_empty_catalog_yields_empty_cursor(
        self, path: Any, settings: MessageEncoderSettings
    ) -> None:
        binding = InMemoryReadBinding(_catalog_server())
        op = ListCollectionsUsingQueryOperation(DB, settings)

        assert await path.drain(await path.execute(op, binding)) == []

    @pytest.mark.asyncio
    async def test_name_filter_is_sent_qualified_and_caller_filter_untouched(
        self, path: Any, legacy_server: InMemoryServer, settings: MessageEncoderSettings
    ) -> None:
        legacy_server.create_collection("db", "users")
        legacy_server.create_collection("db", "orders")
        binding = InMemoryReadBinding(legacy_server)
        op = ListCollectionsUsingQueryOperation(DB, settings)
        caller_filter = {"name": "users"}
        op.filter = caller_filter

        batches = await path.drain(await path.execute(op, binding))

        assert _names(batches) == ["users"]
        assert caller_filter == {"name": "users"}
        find_commands = [c for _, c in legacy_server.commands if "find" in c]
        assert find_commands[0]["find"] == "system.namespaces"
        assert find_commands[0]["filter"] == {"name": "db.users"}

    @pytest.mark.asyncio
    async def test_non_string_name_fails_before_any_network_io(
        self, path: Any, legacy_server: InMemoryServer, settings: MessageEncoderSettings
    ) -> None:
        binding = InMemoryReadBinding(legacy_server)
        op = ListCollectionsUsingQueryOperation(DB, settings)
        op.filter = {"name": Regex("^u")}

        with pytest.raises(NotSupportedError):
            await path.execute(op, binding)

        assert binding.sources_acquired == 0
        assert legacy_server.commands == []

    @pytest.mark.asyncio
    async def test_malformed_catalog_entry_surfaces(
        self, path: Any, settings: MessageEncoderSettings
    ) -> None:
        binding = InMemoryReadBinding(_catalog_server({"name": 5}))
        op = ListCollectionsUsingQueryOperation(DB, settings)
        cursor = await path.execute(op, binding)

        with pytest.raises(ProtocolViolationError):
            await path.drain(cursor)
        assert binding.outstanding_leases == 0

    @pytest.mark.asyncio
    async def test_batches_follow_the_catalog(
        self, path: Any, settings: MessageEncoderSettings
    ) -> None:
        binding = InMemoryReadBinding(
            _catalog_server(
                {"name": "db.a"},
                {"name": "db.a.$_id_"},
                {"name": "db.b"},
                {"name": "db.c"},
            )
        )
        op = ListCollectionsUsingQueryOperation(DB, settings)
        op.batch_size = 2

        batches = await path.drain(await path.execute(op, binding))

        assert batches == [[{"name": "a"}], [{"name": "b"}, {"name": "c"}]]


class TestListCollectionsUsingCommand:
    def test_command_includes_only_set_options(
        self, settings: MessageEncoderSettings
    ) -> None:
        op = ListCollectionsUsingCommandOperation(DB, settings)
        assert op.create_command() == {"listCollections": 1, "cursor": {}}

        op.filter = {"name": "users"}
        op.name_only = True
        op.batch_size = 10
        assert op.create_command() == {
            "listCollections": 1,
            "filter": {"name": "users"},
            "nameOnly": True,
            "cursor": {"batchSize": 10},
        }

    @pytest.mark.asyncio
    async def test_lists_collections(
        self, path: Any, server: InMemoryServer, settings: MessageEncoderSettings
    ) -> None:
        server.create_collection("db", "users")
        server.create_collection("db", "orders")
        server.create_collection("other", "users")
        op = ListCollectionsUsingCommandOperation(DB, settings)
        op.batch_size = 1

        batches = await path.drain(await path.execute(op, InMemoryReadBinding(server)))

        assert batches == [
            [_full_entry("users")],
            [_full_entry("orders")],
        ]


class TestListCollectionsOperation:
    def test_choose_executor_by_wire_version(
        self, settings: MessageEncoderSettings
    ) -> None:
        op = ListCollectionsOperation(DB, settings)
        op.filter = {"name": "users"}
        op.retry_requested = True

        modern = op.choose_executor(ServerDescription("a:1", max_wire_version=3))
        legacy = op.choose_executor(ServerDescription("a:1", max_wire_version=2))

        assert isinstance(modern, Supported)
        assert isinstance(modern.executor, ListCollectionsUsingCommandOperation)
        assert isinstance(legacy, Unsupported)
        assert isinstance(legacy.executor, ListCollectionsUsingQueryOperation)
        for choice in (modern, legacy):
            assert choice.executor.filter == {"name": "users"}
            assert choice.executor.retry_requested is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("wire_version", [2, 17], ids=["legacy", "modern"])
    async def test_same_names_from_either_server(
        self, path: Any, settings: MessageEncoderSettings, wire_version: int
    ) -> None:
        server = InMemoryServer(max_wire_version=wire_version)
        server.create_collection("db", "users")
        server.create_collection("db", "orders")
        server.create_collection("other", "things")
        binding = InMemoryReadBinding(server)
        op = ListCollectionsOperation(DB, settings)

        batches = await path.drain(await path.execute(op, binding))

        assert _names(batches) == ["users", "orders"]
        assert binding.outstanding_leases == 0

    @pytest.mark.asyncio
    async def test_retry_after_downgrade_reads_the_catalog(
        self, path: Any, settings: MessageEncoderSettings
    ) -> None:
        server = InMemoryServer()
        server.create_collection("db", "users")

        def downgrade(name: str, command: Any) -> None:
            if name == "listCollections" and server.max_wire_version >= 3:
                server.max_wire_version = 2
                raise NetworkError("connection reset")

        server.before_command = downgrade
        binding = InMemoryReadBinding(server)
        op = ListCollectionsOperation(DB, settings)
        op.retry_requested = True

        batches = await path.drain(await path.execute(op, binding))

        assert _names(batches) == ["users"]
        sent = [next(iter(c)) for _, c in server.commands]
        assert sent.count("listCollections") == 1
        assert binding.outstanding_leases == 0

    @pytest.mark.asyncio
    async def test_failure_is_not_retried_unless_requested(
        self, path: Any, settings: MessageEncoderSettings
    ) -> None:
        server = InMemoryServer()
        server.create_collection("db", "users")
        server.fail_command(
            "listCollections", exception=NetworkError("connection reset")
        )
        binding = InMemoryReadBinding(server)
        op = ListCollectionsOperation(DB, settings)

        with pytest.raises(NetworkError):
            await path.execute(op, binding)

        assert binding.outstanding_leases == 0

    @pytest.mark.asyncio
    async def test_legacy_server_receives_catalog_query(
        self, path: Any, legacy_server: InMemoryServer, settings: MessageEncoderSettings
    ) -> None:
        legacy_server.create_collection("db", "users")
        op = ListCollectionsOperation(DB, settings)

        await path.drain(await path.execute(op, InMemoryReadBinding(legacy_server)))

        sent = [next(iter(c)) for _, c in legacy_server.commands]
        assert "listCollections" not in sent
        assert sent[0] == "find"

    @pytest.mark.asyncio
    async def test_regex_filter_on_legacy_server_releases_lease(
        self, path: Any, legacy_server: InMemoryServer, settings: MessageEncoderSettings
    ) -> None:
        binding = InMemoryReadBinding(legacy_server)
        op = ListCollectionsOperation(DB, settings)
        op.filter = {"name": Regex("^u")}

        with pytest.raises(NotSupportedError):
            await path.execute(op, binding)

        assert binding.outstanding_leases == 0

    @pytest.mark.asyncio
    async def test_regex_filter_on_modern_server_is_allowed(
        self, path: Any, server: InMemoryServer, settings: MessageEncoderSettings
    ) -> None:
        server.create_collection("db", "users")
        server.create_collection("db", "orders")
        op = ListCollectionsOperation(DB, settings)
        op.filter = {"name": Regex("^u")}

        batches = await path.drain(await path.execute(op, InMemoryReadBinding(server)))

        assert _names(batches) == ["users"]


@pytest.mark.parametrize(
    "factory",
    [
        ListCollectionsOperation,
        ListCollectionsUsingCommandOperation,
        ListCollectionsUsingQueryOperation,
    ],
)
def test_constructor_requires_arguments(factory: Any) -> None:
    with pytest.raises(InvalidArgumentError, match="database_namespace"):
        factory(None, MessageEncoderSettings())
    with pytest.raises(InvalidArgumentError, match="message_encoder_settings"):
        factory(DB, None)
