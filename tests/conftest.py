"""Shared fixtures for decay tests."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from innerdecay.decay import format_timestamp
from innerdecay.store import InMemoryStore

NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference instant for a run."""
    return NOW


@pytest.fixture
def store() -> InMemoryStore:
    """Empty in-memory store."""
    return InMemoryStore(clock=lambda: NOW)


def _days_ago(days: float) -> str:
    return format_timestamp(NOW - timedelta(days=days))


@pytest.fixture
def days_ago() -> Callable[[float], str]:
    """ISO timestamp a number of days before the fixed run instant."""
    return _days_ago


@pytest.fixture
def add_innerface(store: InMemoryStore) -> Callable[..., str]:
    """Factory writing an innerface document and returning its path."""

    def _add(
        innerface_id: str = "focus",
        *,
        owner: str | None = "users/u1/personalities/p1",
        current_score: Any = 10,
        initial_score: Any = 0,
        enabled: bool = True,
        amount: Any = 3,
        frequency: Any = "day",
        interval: Any = 1,
        last_check_in_days: float | None = 2,
        last_decay_date: Any = None,
        created_at: Any = None,
        **extra: Any,
    ) -> str:
        settings: dict[str, Any] = {"enabled": enabled, "amount": amount, "frequency": frequency}
        if interval is not None:
            settings["interval"] = interval
        if last_decay_date is not None:
            settings["lastDecayDate"] = last_decay_date

        data: dict[str, Any] = {
            "name": innerface_id.title(),
            "initialScore": initial_score,
            "decaySettings": settings,
        }
        if current_score is not None:
            data["currentScore"] = current_score
        if last_check_in_days is not None:
            data["lastCheckInDate"] = _days_ago(last_check_in_days)
        if created_at is not None:
            data["createdAt"] = created_at
        data.update(extra)

        path = f"{owner}/innerfaces/{innerface_id}" if owner else f"innerfaces/{innerface_id}"
        store.set(path, data)
        return path

    return _add
