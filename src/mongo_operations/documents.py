"""Helpers over filter and reply documents.

Documents are plain ordered mappings. The engine only ever needs to test
for a field, read or write a field, and take a shallow copy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .exceptions import NotSupportedError, ProtocolViolationError

if TYPE_CHECKING:
    from collections.abc import Mapping

Document = dict[str, Any]


def shallow_clone(document: Mapping[str, Any]) -> Document:
    """Copy the top level of ``document``; nested values stay shared."""
    return dict(document)


def require_plain_string(
    document: Mapping[str, Any], field: str, message: str
) -> str:
    """Return ``document[field]`` if it is a ``str``, else raise NotSupportedError.

    ``bson.Regex``, compiled patterns and sub-documents are rejected.
    """
    value = document[field]
    if not isinstance(value, str):
        raise NotSupportedError(message)
    return value


def get_string_field(document: Mapping[str, Any], field: str) -> str:
    """Read a field a server reply must carry as a string."""
    try:
        value = document[field]
    except KeyError:
        raise ProtocolViolationError(
            f"Reply document has no {field!r} field: {document!r}"
        ) from None
    if not isinstance(value, str):
        raise ProtocolViolationError(
            f"Reply field {field!r} must be a string, got {type(value).__name__}"
        )
    return value
