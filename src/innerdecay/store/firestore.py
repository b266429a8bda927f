"""Google Cloud Firestore document store."""

import logging
import os
from typing import Any

from google.api_core import exceptions as gexc
from google.auth import default as google_auth_default
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2 import service_account

from .base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    StoreError,
    WriteBatch,
    WriteOp,
)

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

# Failed RPCs and failed credential refreshes both surface as StoreError.
CLIENT_ERRORS = (gexc.GoogleAPIError, auth_exceptions.GoogleAuthError)


def build_credentials(credentials_path: str | None = None):
    """Service-account credentials from a key file, else application defaults."""
    key_path = credentials_path or os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    if key_path and os.path.exists(key_path):
        return service_account.Credentials.from_service_account_file(key_path, scopes=SCOPES)
    creds, _ = google_auth_default(scopes=SCOPES)
    return creds


def _to_firestore(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if isinstance(value, dict):
        return {k: _to_firestore(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_firestore(v) for v in value]
    return value


class FirestoreBatch(WriteBatch):
    """Write group backed by a Firestore ``WriteBatch``."""

    def __init__(self, store: "FirestoreStore") -> None:
        super().__init__()
        self._store = store

    def _apply(self, ops: list[WriteOp]) -> None:
        client = self._store.client
        batch = client.batch()
        for op in ops:
            ref = client.document(op.path)
            if op.kind == "update":
                batch.update(ref, _to_firestore(op.data))
            elif op.kind == "create":
                batch.create(ref, _to_firestore(op.data))
            else:
                raise StoreError(f"Unknown write kind: {op.kind}")
        try:
            batch.commit(timeout=self._store.timeout)
        except CLIENT_ERRORS as e:
            raise StoreError(f"Firestore batch of {len(ops)} writes failed: {e}") from e


class FirestoreStore(DocumentStore):
    """Document store on Firestore.

    Collection group queries map directly onto Firestore's
    ``collection_group`` queries, so the query spans every owner without
    iterating owners one by one.
    """

    def __init__(
        self,
        client: firestore.Client | None = None,
        project: str | None = None,
        credentials_path: str | None = None,
        timeout: float | None = 60.0,
    ) -> None:
        """Initialize the store.

        Args:
            client: Existing Firestore client. Built from credentials if None.
            project: Google Cloud project id.
            credentials_path: Service-account key file. Falls back to
                GOOGLE_APPLICATION_CREDENTIALS, then application defaults.
            timeout: Per-call deadline in seconds for reads and commits.
        """
        self.timeout = timeout
        if client is None:
            try:
                client = firestore.Client(
                    project=project or None,
                    credentials=build_credentials(credentials_path),
                )
            except CLIENT_ERRORS as e:
                raise StoreError(f"Cannot create Firestore client: {e}") from e
        self.client = client

    def query_group(
        self, collection_id: str, field_path: str, value: Any
    ) -> list[DocumentSnapshot]:
        logger.debug("Collection group query %s where %s == %r", collection_id, field_path, value)
        query = self.client.collection_group(collection_id).where(
            filter=FieldFilter(field_path, "==", value)
        )
        try:
            docs = query.get(timeout=self.timeout)
        except CLIENT_ERRORS as e:
            raise StoreError(f"Collection group query on '{collection_id}' failed: {e}") from e
        return [
            DocumentSnapshot(path=doc.reference.path, data=doc.to_dict() or {})
            for doc in docs
        ]

    def get(self, path: str) -> dict[str, Any] | None:
        try:
            snapshot = self.client.document(path).get(timeout=self.timeout)
        except CLIENT_ERRORS as e:
            raise StoreError(f"Read of {path} failed: {e}") from e
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def set(self, path: str, data: dict[str, Any]) -> None:
        try:
            self.client.document(path).set(_to_firestore(data), timeout=self.timeout)
        except CLIENT_ERRORS as e:
            raise StoreError(f"Write of {path} failed: {e}") from e

    def batch(self) -> FirestoreBatch:
        return FirestoreBatch(self)

    def new_document_path(self, collection_path: str) -> str:
        return self.client.collection(collection_path).document().path

    def close(self) -> None:
        self.client.close()
