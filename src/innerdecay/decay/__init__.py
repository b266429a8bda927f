"""Inactivity decay engine."""

from .committer import MAX_BATCH_SIZE, BatchCommitError, BatchCommitter
from .evaluator import DecayDecision, activity_anchor, should_decay, threshold_days
from .job import DecayJob, RunReport, RunState
from .models import (
    DecaySettings,
    Frequency,
    HistoryRecord,
    PlannedMutation,
    TrackedAttribute,
    format_timestamp,
    parse_timestamp,
    resolve_first,
)
from .planner import SkipReason, evaluate, plan_mutation
from .scanner import ScanError, scan_decaying_attributes
from .scheduler import DecayScheduler

__all__ = [
    "MAX_BATCH_SIZE",
    "BatchCommitError",
    "BatchCommitter",
    "DecayDecision",
    "DecayJob",
    "DecayScheduler",
    "DecaySettings",
    "Frequency",
    "HistoryRecord",
    "PlannedMutation",
    "RunReport",
    "RunState",
    "ScanError",
    "SkipReason",
    "TrackedAttribute",
    "activity_anchor",
    "evaluate",
    "format_timestamp",
    "parse_timestamp",
    "plan_mutation",
    "resolve_first",
    "scan_decaying_attributes",
    "should_decay",
    "threshold_days",
]
