"""Store-wide scan for attributes with decay enabled."""

import logging

from ..store.base import DocumentStore, StoreError
from .models import TrackedAttribute

logger = logging.getLogger(__name__)

ATTRIBUTE_COLLECTION = "innerfaces"
ENABLED_FIELD = "decaySettings.enabled"


class ScanError(StoreError):
    """The scan query failed; nothing was planned or written."""


def scan_decaying_attributes(
    store: DocumentStore, collection_id: str = ATTRIBUTE_COLLECTION
) -> list[TrackedAttribute]:
    """Return every attribute, across all owners, with decay enabled.

    Raises:
        ScanError: If the store query fails.
    """
    try:
        snapshots = store.query_group(collection_id, ENABLED_FIELD, True)
    except StoreError as e:
        raise ScanError(f"Scan of '{collection_id}' failed: {e}") from e

    attributes = [TrackedAttribute.from_snapshot(s) for s in snapshots]
    logger.info("Found %d innerfaces with decay enabled.", len(attributes))
    return attributes
