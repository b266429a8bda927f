"""Time and threshold evaluation for inactivity decay.

Everything here is pure: no store access, no clock. The caller passes
``now`` so that every attribute in a run is judged against the same instant.
"""

from dataclasses import dataclass
from datetime import datetime

from .models import DecaySettings, Frequency, TrackedAttribute, parse_timestamp, resolve_first

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class DecayDecision:
    """Outcome of evaluating one attribute.

    Attributes:
        due: True when the inactivity threshold has been reached.
        amount: Score to remove. Always the flat decay step, never scaled
            by how far overdue the attribute is.
        elapsed_days: Days since the last activity (fractional).
        threshold_days: Days of inactivity required, None if the frequency
            was not recognized.
    """

    due: bool
    amount: float
    elapsed_days: float
    threshold_days: float | None


def activity_anchor(attribute: TrackedAttribute) -> datetime | None:
    """Most relevant "last activity" instant for an attribute.

    The later of the last check-in and the last decay, so a decay restarts
    the window and a newer check-in still wins. Creation time is used only
    when neither is present. Empty values are skipped; None if nothing
    present parses.
    """
    settings = attribute.decay_settings
    recent = [
        value
        for value in (
            attribute.last_check_in_date,
            settings.last_decay_date if settings else None,
        )
        if value
    ]
    if recent:
        parsed = [dt for dt in map(parse_timestamp, recent) if dt is not None]
        return max(parsed) if parsed else None

    raw = resolve_first(attribute.created_at, present=bool)
    if raw is None:
        return None
    return parse_timestamp(raw)


def threshold_days(frequency: Frequency, interval: float = 1) -> float:
    """Inactivity needed before decay, in days."""
    return (interval or 1) * frequency.days


def should_decay(
    last_activity: datetime, settings: DecaySettings, now: datetime
) -> DecayDecision:
    """Decide whether an attribute is due for decay at ``now``."""
    elapsed = (now - last_activity).total_seconds() / SECONDS_PER_DAY
    amount = settings.amount if settings.amount is not None else 0

    frequency = Frequency.parse(settings.frequency)
    if frequency is None:
        return DecayDecision(due=False, amount=amount, elapsed_days=elapsed, threshold_days=None)

    threshold = threshold_days(frequency, settings.effective_interval)
    return DecayDecision(
        due=elapsed >= threshold,
        amount=amount,
        elapsed_days=elapsed,
        threshold_days=threshold,
    )
