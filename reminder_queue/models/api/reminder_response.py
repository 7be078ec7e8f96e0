# reminder_queue/models/api/reminder_response.py
from reminder_queue.models.api.base import CamelModel
from reminder_queue.models.domain import ClaimBatch, ClaimedEvent, Reminder
from reminder_queue.utils.timestamps import to_rfc3339


class CreateReminderResponse(CamelModel):
    id: str
    trigger_at: str


class ReminderResponse(CamelModel):
    id: str
    title: str
    description: str | None
    trigger_at: str
    timezone: str | None
    created_at: str
    status: str
    metadata: str | None

    @classmethod
    def from_domain(cls, reminder: Reminder) -> "ReminderResponse":
        return cls(
            id=reminder.id,
            title=reminder.title,
            description=reminder.description,
            trigger_at=to_rfc3339(reminder.trigger_at),
            timezone=reminder.timezone,
            created_at=to_rfc3339(reminder.created_at),
            status=reminder.status.value,
            metadata=reminder.metadata_json,
        )


class ListRemindersResponse(CamelModel):
    reminders: list[ReminderResponse]


class ClaimedEventResponse(CamelModel):
    event_id: str
    reminder_id: str
    title: str
    description: str | None
    trigger_at: str
    timezone: str | None
    claim_token: str

    @classmethod
    def from_domain(cls, event: ClaimedEvent) -> "ClaimedEventResponse":
        return cls(
            event_id=event.event_id,
            reminder_id=event.reminder_id,
            title=event.title,
            description=event.description,
            trigger_at=to_rfc3339(event.trigger_at),
            timezone=event.timezone,
            claim_token=event.claim_token,
        )


class ClaimDueResponse(CamelModel):
    """An empty ``events`` list always comes with ``claimToken == ""``."""

    claim_token: str
    events: list[ClaimedEventResponse]

    @classmethod
    def from_batch(cls, batch: ClaimBatch) -> "ClaimDueResponse":
        if not batch.events:
            return cls(claim_token="", events=[])
        return cls(
            claim_token=batch.claim_token,
            events=[ClaimedEventResponse.from_domain(event) for event in batch.events],
        )


class AckSentResponse(CamelModel):
    acknowledged: int


class FailResponse(CamelModel):
    failed: int
