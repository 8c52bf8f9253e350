"""Read operations."""

from .base import ReadOperation
from .features import LIST_COLLECTIONS_COMMAND, Feature, Supported, Unsupported
from .find import FindOperation
from .list_collections import (
    ListCollectionsOperation,
    ListCollectionsUsingCommandOperation,
    ListCollectionsUsingQueryOperation,
    normalize_catalog_batch,
)

__all__ = [
    "LIST_COLLECTIONS_COMMAND",
    "Feature",
    "FindOperation",
    "ListCollectionsOperation",
    "ListCollectionsUsingCommandOperation",
    "ListCollectionsUsingQueryOperation",
    "ReadOperation",
    "Supported",
    "Unsupported",
    "normalize_catalog_batch",
]
