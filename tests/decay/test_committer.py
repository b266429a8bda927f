"""Tests for the bounded batch committer."""

from unittest.mock import Mock

import pytest

from innerdecay.decay import (
    BatchCommitError,
    BatchCommitter,
    TrackedAttribute,
    plan_mutation,
)
from innerdecay.store import DocumentSnapshot, InMemoryStore, StoreError
from innerdecay.store.memory import InMemoryBatch


def _plan_all(store: InMemoryStore, paths: list[str], now) -> list:
    mutations = []
    for path in paths:
        attribute = TrackedAttribute.from_snapshot(DocumentSnapshot(path, store.get(path)))
        mutations.append(plan_mutation(attribute, now, store))
    return mutations


def _commit_all(committer: BatchCommitter, mutations: list) -> None:
    for mutation in mutations:
        committer.add(mutation)
    committer.flush()


class FailingBatch(InMemoryBatch):
    """Batch that raises on commit."""

    def _apply(self, ops):
        raise StoreError("deadline exceeded")


class TestBatchCommitterInit:
    """Tests for BatchCommitter construction."""

    def test_limit_must_be_positive(self, store):
        with pytest.raises(ValueError):
            BatchCommitter(store, limit=0)

    def test_count_writes_needs_room_for_a_pair(self, store):
        with pytest.raises(ValueError):
            BatchCommitter(store, limit=1, count_writes=True)


class TestBatchCommitterGrouping:
    """Tests for how mutations are grouped into batches."""

    def test_451_mutations_two_batches(self, store, add_innerface, now):
        """451 due attributes commit as one batch of 450 and one of 1."""
        paths = [add_innerface(f"i{n:03d}") for n in range(451)]
        committer = BatchCommitter(store)
        _commit_all(committer, _plan_all(store, paths, now))

        # Each mutation carries an update and a history insert.
        assert store.commit_log == [900, 2]
        assert committer.batches_committed == 2
        assert committer.mutations_committed == 451
        assert committer.history_committed == 451
        assert committer.writes_committed == 902
        assert committer.pending == 0

    def test_exactly_limit_single_batch(self, store, add_innerface, now):
        """A full batch commits immediately and flush has nothing left."""
        paths = [add_innerface(f"i{n}") for n in range(3)]
        committer = BatchCommitter(store, limit=3)
        _commit_all(committer, _plan_all(store, paths, now))
        assert store.commit_log == [6]

    def test_orphans_count_one_write(self, store, add_innerface, now):
        paths = [add_innerface(f"i{n}", owner=None) for n in range(5)]
        committer = BatchCommitter(store, limit=2)
        _commit_all(committer, _plan_all(store, paths, now))
        assert store.commit_log == [2, 2, 1]
        assert committer.history_committed == 0

    def test_count_writes_never_splits_pair(self, store, add_innerface, now):
        """When counting writes, an update and its history stay together."""
        owned = [add_innerface(f"o{n}") for n in range(2)]
        orphan = add_innerface("loose", owner=None)
        mutations = _plan_all(store, [owned[0], orphan, owned[1]], now)

        committer = BatchCommitter(store, limit=4, count_writes=True)
        _commit_all(committer, mutations)

        # 2 + 1 fits, the next pair would make 5, so the batch closes at 3.
        assert store.commit_log == [3, 2]

    def test_update_and_history_in_same_batch(self, store, add_innerface, now):
        path = add_innerface("focus", current_score=10, amount=3)
        committer = BatchCommitter(store)
        _commit_all(committer, _plan_all(store, [path], now))

        assert store.get(path)["currentScore"] == 7
        history = store.list_paths("history")
        assert len(history) == 1
        record = store.get(history[0])
        assert record["changes"] == {"focus": -3}
        assert record["serverTimestamp"] == now

    def test_flush_with_nothing_pending(self, store):
        committer = BatchCommitter(store)
        committer.flush()
        assert store.commit_log == []

    def test_on_commit_callback(self, store, add_innerface, now):
        paths = [add_innerface(f"i{n}") for n in range(3)]
        callback = Mock()
        committer = BatchCommitter(store, limit=2, on_commit=callback)
        _commit_all(committer, _plan_all(store, paths, now))

        assert [c.args for c in callback.call_args_list] == [(1, 2, 4), (2, 1, 2)]

    def test_failing_callback_does_not_stop_commits(self, store, add_innerface, now):
        """An observer error after a commit leaves the run going."""
        paths = [add_innerface(f"i{n}") for n in range(3)]
        callback = Mock(side_effect=OSError("log disk full"))
        committer = BatchCommitter(store, limit=2, on_commit=callback)
        _commit_all(committer, _plan_all(store, paths, now))

        assert committer.failed is None
        assert committer.mutations_committed == 3
        assert store.commit_log == [4, 2]
        assert callback.call_count == 2


class TestBatchCommitterFailure:
    """Tests for commit failures."""

    def test_failure_raises_and_keeps_earlier_batches(self, store, add_innerface, now, monkeypatch):
        """Committed batches stay applied; the failing one is lost."""
        paths = [add_innerface(f"i{n}") for n in range(4)]
        mutations = _plan_all(store, paths, now)
        committer = BatchCommitter(store, limit=2)

        committer.add(mutations[0])
        committer.add(mutations[1])
        monkeypatch.setattr(store, "batch", lambda: FailingBatch(store))
        committer.add(mutations[2])

        with pytest.raises(BatchCommitError) as exc_info:
            committer.add(mutations[3])

        assert exc_info.value.lost == 2
        assert exc_info.value.batch_index == 2
        assert committer.mutations_committed == 2
        assert store.get(paths[0])["currentScore"] == 7
        assert store.get(paths[2])["currentScore"] == 10

    def test_no_work_after_failure(self, store, add_innerface, now, monkeypatch):
        paths = [add_innerface(f"i{n}") for n in range(2)]
        mutations = _plan_all(store, paths, now)
        monkeypatch.setattr(store, "batch", lambda: FailingBatch(store))
        committer = BatchCommitter(store, limit=1)

        with pytest.raises(BatchCommitError):
            committer.add(mutations[0])
        with pytest.raises(BatchCommitError):
            committer.add(mutations[1])
        with pytest.raises(BatchCommitError):
            committer.flush()
        assert store.commit_log == []

    def test_failed_batch_is_atomic(self, store, add_innerface, now):
        """A batch whose update targets a missing document applies nothing."""
        path = add_innerface("focus")
        mutation = _plan_all(store, [path], now)[0]
        gone = _plan_all(store, [add_innerface("gone")], now)[0]
        store._docs.pop(gone.attribute.path)

        committer = BatchCommitter(store)
        committer.add(mutation)
        committer.add(gone)
        with pytest.raises(BatchCommitError):
            committer.flush()

        assert store.get(path)["currentScore"] == 10
        assert store.list_paths("history") == []
