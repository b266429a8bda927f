"""SQLite storage for documents."""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    StoreError,
    WriteBatch,
    WriteOp,
    collection_id,
    set_field,
    split_path,
)


def _encode(value: Any) -> Any:
    """json.dumps default hook: datetimes become ISO strings."""
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class SQLiteBatch(WriteBatch):
    """Write group applied in a single SQLite transaction."""

    def __init__(self, store: "SQLiteStore") -> None:
        super().__init__()
        self._store = store

    def _apply(self, ops: list[WriteOp]) -> None:
        self._store._apply_ops(ops)


class SQLiteStore(DocumentStore):
    """Persistent document storage using SQLite.

    Each document is one row holding its path, the id of its collection
    and its fields as JSON. Collection group queries filter on the
    collection id and use ``json_extract`` for the field predicate.
    """

    def __init__(self, db_path: Path, timeout: float = 5.0) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
            timeout: Seconds to wait on a locked database.
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, timeout=self.timeout)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the documents table if it doesn't exist."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                path           TEXT PRIMARY KEY,
                collection_id  TEXT NOT NULL,
                data           TEXT NOT NULL,
                updated_at     TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection_id)"
        )
        conn.commit()

    def query_group(
        self, collection_id_: str, field_path: str, value: Any
    ) -> list[DocumentSnapshot]:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                SELECT path, data FROM documents
                WHERE collection_id = ? AND json_extract(data, ?) = ?
                ORDER BY path
                """,
                (collection_id_, f"$.{field_path}", value),
            )
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Query on '{collection_id_}' failed: {e}") from e
        return [self._row_to_snapshot(row) for row in rows]

    def get(self, path: str) -> dict[str, Any] | None:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "SELECT path, data FROM documents WHERE path = ?",
                (self._normalize(path),),
            )
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Read of {path} failed: {e}") from e
        return self._row_to_snapshot(row).data if row else None

    def set(self, path: str, data: dict[str, Any]) -> None:
        conn = self._get_connection()
        try:
            with conn:
                self._upsert(conn, self._normalize(path), self._resolve(data))
        except sqlite3.Error as e:
            raise StoreError(f"Write of {path} failed: {e}") from e

    def batch(self) -> SQLiteBatch:
        return SQLiteBatch(self)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _apply_ops(self, ops: list[WriteOp]) -> None:
        conn = self._get_connection()
        try:
            # The context manager commits on success and rolls back on error.
            with conn:
                for op in ops:
                    path = self._normalize(op.path)
                    if op.kind == "update":
                        row = conn.execute(
                            "SELECT data FROM documents WHERE path = ?", (path,)
                        ).fetchone()
                        if row is None:
                            raise StoreError(f"No document to update: {path}")
                        data = json.loads(row["data"])
                        for key, value in op.data.items():
                            set_field(data, key, self._resolve(value))
                        self._upsert(conn, path, data)
                    elif op.kind == "create":
                        conn.execute(
                            "INSERT INTO documents (path, collection_id, data) VALUES (?, ?, ?)",
                            (path, collection_id(path), self._dumps(self._resolve(op.data))),
                        )
                    else:
                        raise StoreError(f"Unknown write kind: {op.kind}")
        except sqlite3.Error as e:
            raise StoreError(f"Batch of {len(ops)} writes failed: {e}") from e

    def _upsert(self, conn: sqlite3.Connection, path: str, data: dict[str, Any]) -> None:
        conn.execute(
            """
            INSERT INTO documents (path, collection_id, data)
            VALUES (?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                data = excluded.data,
                updated_at = datetime('now')
            """,
            (path, collection_id(path), self._dumps(data)),
        )

    def _resolve(self, value: Any) -> Any:
        if value is SERVER_TIMESTAMP:
            return datetime.now(timezone.utc)
        if isinstance(value, dict):
            return {k: self._resolve(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve(v) for v in value]
        return value

    @staticmethod
    def _dumps(data: dict[str, Any]) -> str:
        return json.dumps(data, default=_encode)

    @staticmethod
    def _normalize(path: str) -> str:
        segments = split_path(path)
        if len(segments) % 2 != 0:
            raise ValueError(f"Not a document path: {path}")
        return "/".join(segments)

    def _row_to_snapshot(self, row: sqlite3.Row) -> DocumentSnapshot:
        """Convert a database row to a DocumentSnapshot."""
        return DocumentSnapshot(path=row["path"], data=json.loads(row["data"]))
