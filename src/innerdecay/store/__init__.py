"""Document store interface and backends."""

from .base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    StoreError,
    WriteBatch,
    WriteOp,
    parent_document,
)
from .memory import InMemoryStore
from .sqlite import SQLiteStore

__all__ = [
    "SERVER_TIMESTAMP",
    "DocumentSnapshot",
    "DocumentStore",
    "InMemoryStore",
    "SQLiteStore",
    "StoreError",
    "WriteBatch",
    "WriteOp",
    "parent_document",
]
