"""Data models for tracked attributes and decay history."""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable

from ..store.base import SERVER_TIMESTAMP, DocumentSnapshot

HISTORY_TYPE_DECAY = "decay"
DECAY_SOURCE_ID = "system-decay"
DECAY_SOURCE_NAME = "Inactivity Decay"
DECAY_SOURCE_ICON = "hourglass-half"


class Frequency(str, Enum):
    """How often an inactive attribute loses score."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def days(self) -> int:
        # Months are fixed 30-day periods.
        return {Frequency.DAY: 1, Frequency.WEEK: 7, Frequency.MONTH: 30}[self]

    @classmethod
    def parse(cls, value: Any) -> "Frequency | None":
        """Return the matching frequency, or None if unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


def resolve_first(
    *candidates: Any,
    present: Callable[[Any], bool] = lambda v: v is not None,
) -> Any:
    """Return the first candidate accepted by ``present``, else None."""
    for candidate in candidates:
        if present(candidate):
            return candidate
    return None


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings
    and epoch milliseconds. Returns None for anything unparseable.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif is_number(value):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class DecaySettings:
    """Per-attribute decay configuration.

    Attributes:
        enabled: Whether inactivity decay applies at all.
        amount: Score removed per decay event. None if missing or not numeric.
        frequency: Raw frequency value as stored ('day', 'week', 'month').
        interval: Multiplier for the frequency. None or 0 means 1.
        last_decay_date: Raw timestamp of the previous decay, if any.
    """

    enabled: bool = False
    amount: float | None = None
    frequency: Any = None
    interval: Any = None
    last_decay_date: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> "DecaySettings | None":
        if not isinstance(data, dict):
            return None
        amount = data.get("amount")
        return cls(
            enabled=data.get("enabled") is True,
            amount=amount if is_number(amount) else None,
            frequency=data.get("frequency"),
            interval=data.get("interval"),
            last_decay_date=data.get("lastDecayDate"),
        )

    @property
    def effective_interval(self) -> float:
        if is_number(self.interval) and self.interval:
            return self.interval
        return 1


@dataclass(frozen=True)
class TrackedAttribute:
    """One scorable attribute ("innerface") of one owner.

    Attributes:
        path: Full document path.
        owner_path: Path of the owning personality, None if orphaned.
        name: Display name.
        current_score: Current value, None when never set.
        initial_score: Baseline value.
        decay_settings: Decay configuration, None when absent.
        last_check_in_date: Raw timestamp of the latest check-in.
        created_at: Raw creation timestamp.
    """

    path: str
    owner_path: str | None = None
    name: str = ""
    current_score: float | None = None
    initial_score: float | None = None
    decay_settings: DecaySettings | None = None
    last_check_in_date: Any = None
    created_at: Any = None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def score(self) -> float:
        """currentScore, else initialScore, else 0."""
        return resolve_first(self.current_score, self.initial_score, 0)

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "TrackedAttribute":
        data = snapshot.data
        current = data.get("currentScore")
        initial = data.get("initialScore")
        return cls(
            path=snapshot.path,
            owner_path=snapshot.parent_path,
            name=str(data.get("name") or ""),
            current_score=current if is_number(current) else None,
            initial_score=initial if is_number(initial) else None,
            decay_settings=DecaySettings.from_dict(data.get("decaySettings")),
            last_check_in_date=data.get("lastCheckInDate"),
            created_at=data.get("createdAt"),
        )


@dataclass(frozen=True)
class HistoryRecord:
    """Audit ledger entry for one system decay event."""

    timestamp: str
    weight: float
    targets: list[str]
    changes: dict[str, float]
    type: str = HISTORY_TYPE_DECAY
    source_id: str = DECAY_SOURCE_ID
    source_name: str = DECAY_SOURCE_NAME
    source_icon: str = DECAY_SOURCE_ICON

    @classmethod
    def for_decay(cls, attribute_id: str, amount: float, now: datetime) -> "HistoryRecord":
        return cls(
            timestamp=format_timestamp(now),
            weight=-amount,
            targets=[attribute_id],
            changes={attribute_id: -amount},
        )

    def to_document(self) -> dict[str, Any]:
        """Stored form. ``serverTimestamp`` is filled in by the store."""
        return {
            "type": self.type,
            "protocolId": self.source_id,
            "protocolName": self.source_name,
            "protocolIcon": self.source_icon,
            "timestamp": self.timestamp,
            "weight": self.weight,
            "targets": list(self.targets),
            "changes": dict(self.changes),
            "serverTimestamp": SERVER_TIMESTAMP,
        }


@dataclass
class PlannedMutation:
    """An attribute update and its optional history insert.

    Both are committed in the same batch.
    """

    attribute: TrackedAttribute
    update: dict[str, Any]
    new_score: float
    amount: float
    elapsed_days: float
    history_path: str | None = None
    history: HistoryRecord | None = None

    @property
    def write_count(self) -> int:
        return 2 if self.history is not None else 1
