"""Serializer port — decodes raw reply documents into caller types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

T_co = TypeVar("T_co", covariant=True)


@runtime_checkable
class DocumentSerializer(Protocol[T_co]):
    def deserialize(self, document: Mapping[str, Any]) -> T_co: ...
