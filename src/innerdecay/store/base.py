"""Document store interface.

The decay job only needs a small slice of a document database:

- a query across every owner's sub-collection with the same id
  (a "collection group" query)
- single-document reads and writes
- atomic write groups mixing partial updates and inserts

Documents are plain dicts addressed by slash-separated paths such as
``users/u1/personalities/p1/innerfaces/i1``.
"""

import secrets
import string
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

AUTO_ID_ALPHABET = string.ascii_letters + string.digits
AUTO_ID_LENGTH = 20


class StoreError(Exception):
    """Raised when a store operation fails."""


class _ServerTimestamp:
    """Placeholder replaced by the store's clock when a write is applied."""

    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __copy__(self) -> "_ServerTimestamp":
        return self

    def __deepcopy__(self, memo: dict) -> "_ServerTimestamp":
        return self

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def split_path(path: str) -> list[str]:
    """Split a document or collection path into its segments."""
    segments = [s for s in path.strip("/").split("/") if s]
    if not segments:
        raise ValueError("Path must not be empty")
    return segments


def document_id(path: str) -> str:
    """Last segment of a document path."""
    return split_path(path)[-1]


def collection_id(path: str) -> str:
    """Id of the collection holding the document at ``path``."""
    segments = split_path(path)
    if len(segments) % 2 != 0:
        raise ValueError(f"Not a document path: {path}")
    return segments[-2]


def parent_document(path: str) -> str | None:
    """Path of the document that owns the collection holding ``path``.

    Returns None for documents in a top-level collection.
    """
    segments = split_path(path)
    if len(segments) % 2 != 0:
        raise ValueError(f"Not a document path: {path}")
    if len(segments) < 4:
        return None
    return "/".join(segments[:-2])


def new_auto_id() -> str:
    """Random 20-character document id."""
    return "".join(secrets.choice(AUTO_ID_ALPHABET) for _ in range(AUTO_ID_LENGTH))


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document read from the store.

    Attributes:
        path: Full document path.
        data: Document fields.
    """

    path: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return document_id(self.path)

    @property
    def parent_path(self) -> str | None:
        return parent_document(self.path)


@dataclass(frozen=True)
class WriteOp:
    """One write inside a batch."""

    kind: str  # "update" or "create"
    path: str
    data: dict[str, Any]


class WriteBatch(ABC):
    """A group of writes applied atomically by ``commit``."""

    def __init__(self) -> None:
        self._ops: list[WriteOp] = []
        self._committed = False

    def update(self, path: str, fields: dict[str, Any]) -> None:
        """Queue a partial update. Dotted keys address nested fields.

        The document must exist when the batch is committed.
        """
        self._check_open()
        self._ops.append(WriteOp("update", path, dict(fields)))

    def create(self, path: str, data: dict[str, Any]) -> None:
        """Queue the insert of a new document."""
        self._check_open()
        self._ops.append(WriteOp("create", path, dict(data)))

    @property
    def ops(self) -> list[WriteOp]:
        return list(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self) -> None:
        """Apply every queued write, or none of them.

        Raises:
            StoreError: If the batch could not be applied.
        """
        self._check_open()
        self._apply(self._ops)
        self._committed = True

    def _check_open(self) -> None:
        if self._committed:
            raise StoreError("Batch already committed")

    @abstractmethod
    def _apply(self, ops: list[WriteOp]) -> None:
        """Apply ops atomically. Implemented by each backend."""
        ...


class DocumentStore(ABC):
    """Base interface for document stores."""

    @abstractmethod
    def query_group(
        self, collection_id: str, field_path: str, value: Any
    ) -> list[DocumentSnapshot]:
        """Return documents in every collection named ``collection_id``
        whose ``field_path`` equals ``value``, across all parents."""
        ...

    @abstractmethod
    def get(self, path: str) -> dict[str, Any] | None:
        """Read one document, or None if it does not exist."""
        ...

    @abstractmethod
    def set(self, path: str, data: dict[str, Any]) -> None:
        """Create or overwrite one document."""
        ...

    @abstractmethod
    def batch(self) -> WriteBatch:
        """Open a new atomic write group."""
        ...

    def new_document_path(self, collection_path: str) -> str:
        """Allocate a path for a new document in ``collection_path``."""
        segments = split_path(collection_path)
        if len(segments) % 2 != 1:
            raise ValueError(f"Not a collection path: {collection_path}")
        return f"{'/'.join(segments)}/{new_auto_id()}"

    def close(self) -> None:
        """Release backend resources. No-op by default."""


def set_field(data: dict[str, Any], field_path: str, value: Any) -> None:
    """Set a possibly dotted field in a nested dict, creating parents."""
    keys = field_path.split(".")
    target = data
    for key in keys[:-1]:
        child = target.get(key)
        if not isinstance(child, dict):
            child = {}
            target[key] = child
        target = child
    target[keys[-1]] = value


def get_field(data: dict[str, Any], field_path: str, default: Any = None) -> Any:
    """Read a possibly dotted field from a nested dict."""
    target: Any = data
    for key in field_path.split("."):
        if not isinstance(target, dict) or key not in target:
            return default
        target = target[key]
    return target
