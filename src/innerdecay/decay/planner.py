"""Turns a scanned attribute into at most one decay mutation."""

import logging
from datetime import datetime

from ..store.base import DocumentStore
from .evaluator import DecayDecision, activity_anchor, should_decay
from .models import HistoryRecord, PlannedMutation, TrackedAttribute, format_timestamp

logger = logging.getLogger(__name__)

HISTORY_COLLECTION = "history"


class SkipReason:
    """Why an attribute produced no mutation."""

    NO_SETTINGS = "no_settings"
    DISABLED = "disabled"
    INVALID_AMOUNT = "invalid_amount"
    NO_ANCHOR = "no_anchor"
    NOT_DUE = "not_due"
    AT_FLOOR = "at_floor"


def evaluate(
    attribute: TrackedAttribute, now: datetime
) -> tuple[str | None, DecayDecision | None]:
    """Judge one attribute at ``now``.

    Returns:
        (skip reason, decision). The reason is None when the attribute
        decays; the decision is None when evaluation never got that far.
    """
    settings = attribute.decay_settings
    if settings is None:
        return SkipReason.NO_SETTINGS, None
    if not settings.enabled:
        return SkipReason.DISABLED, None
    if settings.amount is None or settings.amount < 0:
        return SkipReason.INVALID_AMOUNT, None

    anchor = activity_anchor(attribute)
    if anchor is None:
        return SkipReason.NO_ANCHOR, None

    decision = should_decay(anchor, settings, now)
    if not decision.due:
        return SkipReason.NOT_DUE, decision

    current = attribute.score
    if max(0, current - decision.amount) == current == 0:
        return SkipReason.AT_FLOOR, decision
    return None, decision


def plan_mutation(
    attribute: TrackedAttribute,
    now: datetime,
    store: DocumentStore,
    history_collection: str = HISTORY_COLLECTION,
) -> PlannedMutation | None:
    """Plan the decay of one attribute.

    Args:
        attribute: The scanned attribute.
        now: The run's reference instant.
        store: Used only to allocate the history document path.
        history_collection: Name of the owner's history sub-collection.

    Returns:
        The planned mutation, or None if the attribute is skipped.
    """
    reason, decision = evaluate(attribute, now)
    if reason is not None:
        logger.debug("Skipping %s: %s", attribute.path, reason)
        return None
    assert decision is not None

    amount = decision.amount
    new_score = max(0, attribute.score - amount)

    logger.info(
        "Decaying innerface %s (%s). Days inactive: %.1f",
        attribute.id,
        attribute.name,
        decision.elapsed_days,
    )

    mutation = PlannedMutation(
        attribute=attribute,
        update={
            "currentScore": new_score,
            "decaySettings.lastDecayDate": format_timestamp(now),
        },
        new_score=new_score,
        amount=amount,
        elapsed_days=decision.elapsed_days,
    )

    if attribute.owner_path is None:
        logger.warning("Innerface %s has no owner; history entry omitted", attribute.path)
        return mutation

    mutation.history_path = store.new_document_path(
        f"{attribute.owner_path}/{history_collection}"
    )
    mutation.history = HistoryRecord.for_decay(attribute.id, amount, now)
    return mutation
