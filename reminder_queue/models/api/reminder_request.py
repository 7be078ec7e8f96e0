# reminder_queue/models/api/reminder_request.py
"""
Request shapes for queue operations. Timestamps stay strings here; the
service parses them so errors name the field the caller sent.
"""

from pydantic import Field, field_validator

from reminder_queue.models.api.base import CamelModel

# Widest row cap either backend can bind (signed 64-bit)
MAX_ROW_LIMIT = 2**63 - 1


class CreateReminderRequest(CamelModel):
    """Create a reminder and queue its delivery event."""

    title: str = Field(..., min_length=1)
    description: str | None = None
    trigger_at: str = Field(..., description="RFC3339 with offset")
    timezone: str | None = Field(default=None, description="Display only")
    metadata: str | None = Field(default=None, description="Opaque, passed through unmodified")

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value


class ListRemindersRequest(CamelModel):
    status: str | None = None
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    limit: int | None = Field(default=None, ge=1, le=MAX_ROW_LIMIT)


class CancelReminderRequest(CamelModel):
    id: str = Field(..., min_length=1)


class ClaimDueRequest(CamelModel):
    """Claim up to ``limit`` due events for one poller."""

    claimer_id: str = Field(..., min_length=1)
    now: str | None = Field(default=None, description="Override for replays and tests")
    limit: int | None = Field(default=None, ge=1, le=MAX_ROW_LIMIT)

    @field_validator("claimer_id")
    @classmethod
    def claimer_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("claimerId must not be blank")
        return value


class AckSentRequest(CamelModel):
    claim_token: str = Field(..., min_length=1)
    event_ids: list[str] = Field(..., min_length=1)
    sent_at: str | None = None


class FailRequest(CamelModel):
    claim_token: str = Field(..., min_length=1)
    event_ids: list[str] = Field(..., min_length=1)
    error: str = Field(..., min_length=1)
