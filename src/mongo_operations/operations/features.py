"""Server feature detection by wire version."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar, Union

if TYPE_CHECKING:
    from ..ports.binding import ServerDescription

E = TypeVar("E")


@dataclass(frozen=True)
class Feature:
    """A server capability introduced at ``first_wire_version``."""

    name: str
    first_wire_version: int

    def is_supported(self, server_description: ServerDescription) -> bool:
        return server_description.max_wire_version >= self.first_wire_version


# MongoDB 3.0
LIST_COLLECTIONS_COMMAND = Feature("listCollectionsCommand", 3)


@dataclass(frozen=True)
class Supported(Generic[E]):
    """The server supports the feature; run the modern executor."""

    executor: E


@dataclass(frozen=True)
class Unsupported(Generic[E]):
    """The server predates the feature; run the legacy executor."""

    executor: E


ExecutorChoice = Union[Supported[E], Unsupported[E]]
