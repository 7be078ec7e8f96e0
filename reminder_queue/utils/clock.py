"""Clock abstractions so every "now" is injectable."""

from datetime import UTC, datetime, timedelta
from typing import Protocol

from reminder_queue.utils.timestamps import ensure_utc


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        """Return a timezone-aware UTC timestamp."""


class SystemClock:
    """Wall clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """Clock frozen at an instant until moved explicitly. Used by tests and replays."""

    def __init__(self, instant: datetime):
        self._instant = ensure_utc(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = ensure_utc(instant)

    def advance(self, delta: timedelta) -> datetime:
        self._instant = self._instant + delta
        return self._instant
