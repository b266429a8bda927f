"""In-memory document store for tests and dry runs."""

import copy
from datetime import datetime, timezone
from typing import Any, Callable

from .base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    StoreError,
    WriteBatch,
    WriteOp,
    collection_id,
    get_field,
    set_field,
    split_path,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryBatch(WriteBatch):
    """Write group applied to an InMemoryStore."""

    def __init__(self, store: "InMemoryStore") -> None:
        super().__init__()
        self._store = store

    def _apply(self, ops: list[WriteOp]) -> None:
        self._store._apply_ops(ops)


class InMemoryStore(DocumentStore):
    """Dict-backed store.

    Every committed batch size is appended to ``commit_log`` so callers can
    check how writes were grouped.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        self._clock = clock or _utcnow
        self.commit_log: list[int] = []

    def query_group(
        self, collection_id_: str, field_path: str, value: Any
    ) -> list[DocumentSnapshot]:
        results = []
        for path in sorted(self._docs):
            if collection_id(path) != collection_id_:
                continue
            data = self._docs[path]
            if get_field(data, field_path, default=_MISSING) == value:
                results.append(DocumentSnapshot(path=path, data=copy.deepcopy(data)))
        return results

    def get(self, path: str) -> dict[str, Any] | None:
        data = self._docs.get(self._normalize(path))
        return copy.deepcopy(data) if data is not None else None

    def set(self, path: str, data: dict[str, Any]) -> None:
        self._docs[self._normalize(path)] = self._resolve(copy.deepcopy(data))

    def batch(self) -> InMemoryBatch:
        return InMemoryBatch(self)

    def list_paths(self, collection_id_: str | None = None) -> list[str]:
        """All stored document paths, optionally limited to one collection id."""
        paths = sorted(self._docs)
        if collection_id_ is None:
            return paths
        return [p for p in paths if collection_id(p) == collection_id_]

    def _apply_ops(self, ops: list[WriteOp]) -> None:
        staged = copy.deepcopy(self._docs)
        for op in ops:
            path = self._normalize(op.path)
            if op.kind == "update":
                if path not in staged:
                    raise StoreError(f"No document to update: {path}")
                for key, value in op.data.items():
                    set_field(staged[path], key, self._resolve(copy.deepcopy(value)))
            elif op.kind == "create":
                if path in staged:
                    raise StoreError(f"Document already exists: {path}")
                staged[path] = self._resolve(copy.deepcopy(op.data))
            else:
                raise StoreError(f"Unknown write kind: {op.kind}")
        self._docs = staged
        self.commit_log.append(len(ops))

    def _resolve(self, value: Any) -> Any:
        if value is SERVER_TIMESTAMP:
            return self._clock()
        if isinstance(value, dict):
            return {k: self._resolve(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve(v) for v in value]
        return value

    @staticmethod
    def _normalize(path: str) -> str:
        segments = split_path(path)
        if len(segments) % 2 != 0:
            raise ValueError(f"Not a document path: {path}")
        return "/".join(segments)


_MISSING = object()
