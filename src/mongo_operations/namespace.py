"""Database and collection namespaces."""

from __future__ import annotations

from dataclasses import dataclass

from .exceptions import InvalidArgumentError

SYSTEM_NAMESPACES = "system.namespaces"


@dataclass(frozen=True)
class DatabaseNamespace:
    """A database name, validated on construction."""

    database_name: str

    def __post_init__(self) -> None:
        if not isinstance(self.database_name, str):
            raise InvalidArgumentError("database_name")
        if not self.database_name or "." in self.database_name:
            raise InvalidArgumentError(
                "database_name",
                f"Invalid database name: {self.database_name!r}",
            )

    @property
    def system_namespaces_collection(self) -> CollectionNamespace:
        """The legacy catalog listing every collection and index."""
        return CollectionNamespace(self, SYSTEM_NAMESPACES)

    def __str__(self) -> str:
        return self.database_name


@dataclass(frozen=True)
class CollectionNamespace:
    """A collection inside a database."""

    database_namespace: DatabaseNamespace
    collection_name: str

    def __post_init__(self) -> None:
        if self.database_namespace is None:
            raise InvalidArgumentError("database_namespace")
        if not isinstance(self.collection_name, str) or not self.collection_name:
            raise InvalidArgumentError(
                "collection_name",
                f"Invalid collection name: {self.collection_name!r}",
            )

    @classmethod
    def from_full_name(cls, full_name: str) -> CollectionNamespace:
        """Parse ``"<db>.<collection>"``; the collection part may contain dots."""
        database_name, sep, collection_name = full_name.partition(".")
        if not sep:
            raise InvalidArgumentError(
                "full_name", f"Not a collection namespace: {full_name!r}"
            )
        return cls(DatabaseNamespace(database_name), collection_name)

    @property
    def database_name(self) -> str:
        return self.database_namespace.database_name

    @property
    def full_name(self) -> str:
        return f"{self.database_name}.{self.collection_name}"

    def __str__(self) -> str:
        return self.full_name
