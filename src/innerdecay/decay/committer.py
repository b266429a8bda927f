"""Bounded batch committer.

Planned mutations are grouped into atomic write batches of at most
``limit`` units. A full batch is committed before the next one is opened,
so commits never overlap. There is no atomicity across batches: once a
batch is committed it stays committed even if a later one fails.
"""

import logging
from typing import Callable

from ..store.base import DocumentStore, StoreError, WriteBatch
from .models import PlannedMutation

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 450


class BatchCommitError(StoreError):
    """A batch failed to commit.

    Attributes:
        lost: Number of mutations in the failed batch.
        batch_index: 1-based index of the failed batch within the run.
    """

    def __init__(self, message: str, lost: int, batch_index: int) -> None:
        super().__init__(message)
        self.lost = lost
        self.batch_index = batch_index


class BatchCommitter:
    """Accumulates planned mutations and commits them in bounded groups.

    By default each planned mutation counts as one unit against ``limit``,
    whether or not it carries a history insert. With ``count_writes`` each
    individual write counts, and a mutation that would not fit in the open
    batch causes that batch to be committed first. In both modes a
    mutation's update and history insert always land in the same batch.

    Example:
        committer = BatchCommitter(store)
        for mutation in mutations:
            committer.add(mutation)
        committer.flush()
    """

    def __init__(
        self,
        store: DocumentStore,
        limit: int = MAX_BATCH_SIZE,
        count_writes: bool = False,
        on_commit: Callable[[int, int, int], None] | None = None,
    ) -> None:
        """Initialize the committer.

        Args:
            store: Store providing the write batches.
            limit: Maximum units per batch.
            count_writes: Count writes instead of mutations.
            on_commit: Optional callback ``(batch_index, mutations, writes)``
                invoked after each successful commit.
        """
        if limit < 1 or (count_writes and limit < 2):
            raise ValueError("limit is too small to hold a mutation")
        self.store = store
        self.limit = limit
        self.count_writes = count_writes
        self.on_commit = on_commit

        self.batches_committed = 0
        self.mutations_committed = 0
        self.writes_committed = 0
        self.history_committed = 0
        self.failed: BatchCommitError | None = None

        self._batch: WriteBatch | None = None
        self._count = 0
        self._pending: list[PlannedMutation] = []

    @property
    def pending(self) -> int:
        """Mutations waiting in the open batch."""
        return len(self._pending)

    def add(self, mutation: PlannedMutation) -> None:
        """Queue one mutation, committing the open batch when it is full.

        Raises:
            BatchCommitError: If a commit triggered by this call fails, or a
                previous commit already failed.
        """
        if self.failed is not None:
            raise self.failed

        units = mutation.write_count if self.count_writes else 1
        if self._count and self._count + units > self.limit:
            self._commit()

        batch = self._open_batch()
        batch.update(mutation.attribute.path, mutation.update)
        if mutation.history is not None and mutation.history_path is not None:
            batch.create(mutation.history_path, mutation.history.to_document())
        self._pending.append(mutation)
        self._count += units

        if self._count >= self.limit:
            self._commit()

    def flush(self) -> None:
        """Commit whatever remains in the open batch."""
        if self.failed is not None:
            raise self.failed
        if self._pending:
            remaining = len(self._pending)
            self._commit()
            logger.info("Final commit: %d updates.", remaining)

    def _open_batch(self) -> WriteBatch:
        if self._batch is None:
            self._batch = self.store.batch()
        return self._batch

    def _commit(self) -> None:
        assert self._batch is not None
        batch, pending = self._batch, self._pending
        index = self.batches_committed + 1
        self._batch, self._pending, self._count = None, [], 0

        writes = len(batch)
        try:
            batch.commit()
        except Exception as e:
            self.failed = BatchCommitError(
                f"Batch {index} ({len(pending)} mutations) failed: {e}",
                lost=len(pending),
                batch_index=index,
            )
            logger.error("%s", self.failed)
            raise self.failed from e

        self.batches_committed += 1
        self.mutations_committed += len(pending)
        self.writes_committed += writes
        self.history_committed += sum(1 for m in pending if m.history is not None)
        logger.debug("Committed batch %d: %d mutations, %d writes", index, len(pending), writes)
        if self.on_commit is not None:
            # The batch is already applied; a failing observer must not end the run.
            try:
                self.on_commit(index, len(pending), writes)
            except Exception:
                logger.exception("on_commit callback failed for batch %d", index)
