"""
Domain models for the reminder claim queue.

These lightweight dataclasses mirror the persisted rows. They avoid
business logic so repositories and services can share them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum


class ReminderStatus(str, Enum):
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"
    # Declared in the schema; no queue operation assigns it
    COMPLETED = "COMPLETED"

    @classmethod
    def names(cls) -> list[str]:
        return [status.value for status in cls]


@dataclass(slots=True)
class Reminder:
    """Represents a reminders row."""

    id: str
    title: str
    description: str | None
    trigger_at: datetime
    timezone: str | None  # display only, triggering is always UTC
    created_at: datetime
    status: ReminderStatus = ReminderStatus.PENDING
    metadata_json: str | None = None


@dataclass(slots=True)
class ReminderEvent:
    """Represents a reminder_events row: the delivery-queue entry of a reminder."""

    id: str
    reminder_id: str
    trigger_at: datetime
    claimed_at: datetime | None = None
    claim_token: str | None = None
    sent_at: datetime | None = None
    attempts: int = 0
    last_error: str | None = None

    @property
    def is_sent(self) -> bool:
        return self.sent_at is not None

    def is_claim_active(self, now: datetime, claim_timeout: timedelta) -> bool:
        """
        Same boundary as the claim query: the lease lapses once
        ``claimed_at < now - claim_timeout``.
        """
        return self.claimed_at is not None and self.claimed_at >= now - claim_timeout


@dataclass(slots=True)
class ClaimedEvent:
    """A claimed event joined with its owning reminder."""

    event_id: str
    reminder_id: str
    title: str
    description: str | None
    trigger_at: datetime
    timezone: str | None
    claim_token: str
    attempts: int = 0


@dataclass(slots=True)
class ClaimBatch:
    """Result of one claim call. An empty batch carries an empty token."""

    claim_token: str
    events: list[ClaimedEvent] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "ClaimBatch":
        return cls(claim_token="", events=[])

    @property
    def event_ids(self) -> list[str]:
        return [event.event_id for event in self.events]

    def __len__(self) -> int:
        return len(self.events)
