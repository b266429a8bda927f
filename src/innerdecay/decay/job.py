"""Decay orchestrator: one scan, one sequential planning pass, bounded commits."""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from ..config import DecayConfig
from ..logging import JSONLLogger
from ..store.base import DocumentStore
from .committer import BatchCommitError, BatchCommitter
from .models import PlannedMutation, format_timestamp
from .planner import plan_mutation
from .scanner import ScanError, scan_decaying_attributes

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Lifecycle of a single run."""

    IDLE = "idle"
    SCANNING = "scanning"
    PLANNING = "planning"
    COMMITTING = "committing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class RunReport:
    """Outcome of one decay run.

    Attributes:
        run_id: Identifier shared by every log entry of the run.
        now: The instant every attribute was judged against.
        scanned: Attributes returned by the scan.
        mutated: Attribute updates that were committed.
        skipped: Attributes that produced no mutation.
        history_written: History records that were committed.
        orphaned: Mutations committed without a history record.
        batches: Batches committed.
        uncommitted: Planned mutations lost to a failed commit.
        unvisited: Scanned attributes never evaluated because the run
            stopped after a failed commit.
        planned: Every mutation planned in the run.
        dry_run: True when nothing was written.
        commit_error: Message of the failed commit, if any.
        duration_ms: Wall time of the run.
    """

    run_id: str
    now: datetime
    scanned: int = 0
    mutated: int = 0
    skipped: int = 0
    history_written: int = 0
    orphaned: int = 0
    batches: int = 0
    uncommitted: int = 0
    unvisited: int = 0
    planned: list[PlannedMutation] = field(default_factory=list)
    dry_run: bool = False
    commit_error: str | None = None
    duration_ms: float = 0.0

    @property
    def partial(self) -> bool:
        """True when a commit failed after the scan succeeded."""
        return self.commit_error is not None

    def summary(self) -> str:
        prefix = "[dry run] " if self.dry_run else ""
        text = (
            f"{prefix}scanned={self.scanned} mutated={self.mutated} "
            f"skipped={self.skipped} history={self.history_written} "
            f"batches={self.batches}"
        )
        if self.dry_run:
            text += f" would_mutate={len(self.planned)}"
        if self.partial:
            text += (
                f" uncommitted={self.uncommitted} unvisited={self.unvisited}"
                f" error={self.commit_error}"
            )
        return text


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DecayJob:
    """Runs one decay pass over every tracked attribute.

    The store is passed in explicitly; the job keeps no state between runs.

    Example:
        job = DecayJob(store, DecayConfig(store="memory"))
        report = job.run()
        print(report.summary())
    """

    def __init__(
        self,
        store: DocumentStore,
        config: DecayConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        run_log: JSONLLogger | None = None,
    ) -> None:
        """Initialize the job.

        Args:
            store: Document store holding attributes and history.
            config: Job configuration. Uses defaults if None.
            clock: Source of the run's reference instant.
            run_log: Optional structured run log.
        """
        self.store = store
        self.config = config or DecayConfig()
        self.clock = clock or _utcnow
        self.run_log = run_log
        self.state = RunState.IDLE

    def run(self, now: datetime | None = None, dry_run: bool = False) -> RunReport:
        """Execute one run.

        Args:
            now: Reference instant. Taken from the clock if None.
            dry_run: Plan only; write nothing.

        Returns:
            The run report. A failed batch commit ends the run early and is
            reported through ``commit_error`` rather than raised.

        Raises:
            ScanError: If the scan fails. Nothing has been written.
        """
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        report = RunReport(run_id=f"decay-{uuid.uuid4().hex[:8]}", now=now, dry_run=dry_run)
        start = time.monotonic()

        if self.run_log:
            self.run_log.set_run_id(report.run_id)
            self.run_log.log("run_start", now=format_timestamp(now), dry_run=dry_run)

        logger.info("Running innerface decay check at %s", format_timestamp(now))

        self.state = RunState.SCANNING
        try:
            attributes = scan_decaying_attributes(self.store, self.config.collection_id)
        except ScanError as e:
            self.state = RunState.ABORTED
            report.duration_ms = (time.monotonic() - start) * 1000
            logger.error("Decay run aborted: %s", e)
            if self.run_log:
                self.run_log.log("run_aborted", error=str(e), duration_ms=report.duration_ms)
            raise
        report.scanned = len(attributes)
        if self.run_log:
            self.run_log.log_scan(report.scanned, duration_ms=(time.monotonic() - start) * 1000)

        committer = None
        if not dry_run:
            committer = BatchCommitter(
                self.store,
                limit=self.config.batch_limit,
                count_writes=self.config.count_writes,
                on_commit=self._on_commit,
            )

        self.state = RunState.PLANNING
        try:
            for attribute in attributes:
                mutation = plan_mutation(
                    attribute, now, self.store, self.config.history_collection
                )
                if mutation is None:
                    report.skipped += 1
                    continue
                report.planned.append(mutation)
                if committer is not None:
                    self.state = RunState.COMMITTING
                    committer.add(mutation)
                    self.state = RunState.PLANNING

            if committer is not None:
                self.state = RunState.COMMITTING
                committer.flush()
        except BatchCommitError as e:
            report.commit_error = str(e)
            if self.run_log:
                self.run_log.log_batch_failed(e.batch_index, e.lost, str(e))
            logger.warning("Decay run stopped after a failed commit: %s", e)

        if committer is not None:
            report.mutated = committer.mutations_committed
            report.history_written = committer.history_committed
            report.orphaned = report.mutated - report.history_written
            report.batches = committer.batches_committed
            report.uncommitted = len(report.planned) - report.mutated
            report.unvisited = report.scanned - len(report.planned) - report.skipped

        self.state = RunState.DONE
        report.duration_ms = (time.monotonic() - start) * 1000
        logger.info("Decay run finished: %s", report.summary())
        if self.run_log:
            self.run_log.log_run_end(
                report.scanned,
                report.mutated,
                report.duration_ms,
                dry_run=dry_run,
                error=report.commit_error,
                skipped=report.skipped,
                batches=report.batches,
            )
        return report

    def _on_commit(self, batch_index: int, mutations: int, writes: int) -> None:
        if self.run_log:
            self.run_log.log_batch_commit(batch_index, mutations, writes)
