"""Declarative object store."""

from metal_operator.store.base import (
    ADDED,
    DELETED,
    KINDS,
    MODIFIED,
    ObjectStore,
    Watch,
    WatchEvent,
)
from metal_operator.store.sqlite import SqliteObjectStore

__all__ = [
    "ADDED",
    "DELETED",
    "KINDS",
    "MODIFIED",
    "ObjectStore",
    "SqliteObjectStore",
    "Watch",
    "WatchEvent",
]
