"""
Tests for request validation, defaults and error tagging in ReminderService.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from reminder_queue.errors import ErrorKind, ReminderServiceError
from reminder_queue.models.api import ClaimDueRequest, CreateReminderRequest
from reminder_queue.repositories.reminder_repository import ReminderRepositoryError
from reminder_queue.services.reminder_service import ReminderService
from reminder_queue.utils.clock import FixedClock

NOON = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


async def _create(service, trigger_at="2024-01-01T11:00:00Z", **extra):
    return await service.create_reminder({"title": "Stretch", "triggerAt": trigger_at, **extra})


@pytest.mark.asyncio
async def test_create_normalizes_trigger_at_to_utc(service):
    created = await _create(service, trigger_at="2024-01-02T14:00:00+02:00")

    assert created.id == "id-1"
    assert created.trigger_at == "2024-01-02T12:00:00Z"
    assert created.to_dict() == {"id": "id-1", "triggerAt": "2024-01-02T12:00:00Z"}


@pytest.mark.asyncio
async def test_create_accepts_request_model(service):
    request = CreateReminderRequest(
        title="Call mom",
        description="Sunday call",
        trigger_at="2024-01-02T12:00:00Z",
        timezone="Europe/Paris",
        metadata='{"channel": "sms"}',
    )

    await service.create_reminder(request)

    listed = await service.list_reminders()
    reminder = listed.reminders[0]
    assert reminder.title == "Call mom"
    assert reminder.description == "Sunday call"
    assert reminder.timezone == "Europe/Paris"
    assert reminder.metadata == '{"channel": "sms"}'
    assert reminder.status == "PENDING"
    assert reminder.created_at == "2024-01-01T12:00:00Z"


@pytest.mark.asyncio
@pytest.mark.parametrize("trigger_at", ["invalid-date", "2024-01-01T11:00:00", "", "2024-13-01T00:00:00Z"])
async def test_create_rejects_bad_trigger_at(service, trigger_at):
    with pytest.raises(ReminderServiceError) as exc_info:
        await _create(service, trigger_at=trigger_at)

    assert exc_info.value.kind is ErrorKind.VALIDATION
    assert exc_info.value.field == "triggerAt"


@pytest.mark.asyncio
async def test_create_requires_title(service):
    with pytest.raises(ReminderServiceError) as exc_info:
        await service.create_reminder({"triggerAt": "2024-01-01T11:00:00Z"})

    assert exc_info.value.kind is ErrorKind.VALIDATION
    assert exc_info.value.field == "title"
    assert "Missing required field" in exc_info.value.message


@pytest.mark.asyncio
async def test_create_rejects_blank_title(service):
    with pytest.raises(ReminderServiceError) as exc_info:
        await service.create_reminder({"title": "   ", "triggerAt": "2024-01-01T11:00:00Z"})

    assert exc_info.value.field == "title"


@pytest.mark.asyncio
async def test_list_status_is_case_insensitive(service):
    await _create(service)

    listed = await service.list_reminders({"status": "pending"})

    assert len(listed.reminders) == 1


@pytest.mark.asyncio
async def test_list_rejects_unknown_status(service):
    with pytest.raises(ReminderServiceError) as exc_info:
        await service.list_reminders({"status": "snoozed"})

    error = exc_info.value
    assert error.kind is ErrorKind.VALIDATION
    assert error.field == "status"
    assert "PENDING, CANCELLED, COMPLETED" in error.message


@pytest.mark.asyncio
async def test_list_rejects_bad_range(service):
    with pytest.raises(ReminderServiceError) as exc_info:
        await service.list_reminders({"from": "yesterday"})

    assert exc_info.value.field == "from"


@pytest.mark.asyncio
async def test_list_range_and_limit(service):
    await _create(service, trigger_at="2024-01-01T09:00:00Z")
    await _create(service, trigger_at="2024-01-01T10:00:00Z")
    await _create(service, trigger_at="2024-01-01T11:00:00Z")

    listed = await service.list_reminders(
        {"from": "2024-01-01T10:00:00Z", "to": "2024-01-01T11:00:00Z", "limit": 1}
    )

    assert [r.trigger_at for r in listed.reminders] == ["2024-01-01T10:00:00Z"]


@pytest.mark.asyncio
async def test_claim_uses_injected_clock(service, fixed_clock):
    await _create(service, trigger_at="2024-01-01T12:30:00Z")

    assert (await service.claim_due({"claimerId": "poller-1"})).events == []

    fixed_clock.advance(timedelta(minutes=31))
    claimed = await service.claim_due({"claimerId": "poller-1"})

    assert len(claimed.events) == 1


@pytest.mark.asyncio
async def test_claim_now_override(service):
    await _create(service, trigger_at="2024-01-01T12:30:00Z")

    claimed = await service.claim_due({"claimerId": "poller-1", "now": "2024-01-01T13:00:00Z"})

    assert len(claimed.events) == 1


@pytest.mark.asyncio
async def test_claim_defaults_to_ten_events(service):
    for hour in range(12):
        await _create(service, trigger_at=f"2024-01-01T{hour:02d}:00:00Z")

    claimed = await service.claim_due(ClaimDueRequest(claimer_id="poller-1"))

    assert len(claimed.events) == 10


@pytest.mark.asyncio
async def test_empty_claim_has_empty_token(service):
    claimed = await service.claim_due({"claimerId": "poller-1"})

    assert claimed.to_dict() == {"claimToken": "", "events": []}


@pytest.mark.asyncio
async def test_claimed_event_shape(service):
    created = await _create(service, description="5 minutes", timezone="Asia/Tokyo")

    claimed = await service.claim_due({"claimerId": "poller-1"})

    assert claimed.to_dict()["events"] == [
        {
            "eventId": "id-2",
            "reminderId": created.id,
            "title": "Stretch",
            "description": "5 minutes",
            "triggerAt": "2024-01-01T11:00:00Z",
            "timezone": "Asia/Tokyo",
            "claimToken": claimed.claim_token,
        }
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, field",
    [
        ({}, "claimerId"),
        ({"claimerId": ""}, "claimerId"),
        ({"claimerId": "poller-1", "limit": 0}, "limit"),
        ({"claimerId": "poller-1", "now": "noon"}, "now"),
    ],
)
async def test_claim_validation(service, payload, field):
    with pytest.raises(ReminderServiceError) as exc_info:
        await service.claim_due(payload)

    assert exc_info.value.kind is ErrorKind.VALIDATION
    assert exc_info.value.field == field


@pytest.mark.asyncio
async def test_ack_defaults_sent_at_to_clock(service, repository, fixed_clock):
    await _create(service)
    claimed = await service.claim_due({"claimerId": "poller-1"})
    fixed_clock.advance(timedelta(seconds=30))

    acked = await service.ack_sent(
        {"claimToken": claimed.claim_token, "eventIds": [claimed.events[0].event_id]}
    )

    assert acked.acknowledged == 1
    stored = await repository.get_event(claimed.events[0].event_id)
    assert stored.is_sent
    assert stored.sent_at == NOON + timedelta(seconds=30)


@pytest.mark.asyncio
async def test_ack_twice_is_idempotent(service):
    await _create(service)
    claimed = await service.claim_due({"claimerId": "poller-1"})
    request = {
        "claimToken": claimed.claim_token,
        "eventIds": [e.event_id for e in claimed.events],
        "sentAt": "2024-01-01T12:00:05Z",
    }

    assert (await service.ack_sent(request)).acknowledged == 1
    assert (await service.ack_sent(request)).acknowledged == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, field",
    [
        ({"eventIds": ["e"]}, "claimToken"),
        ({"claimToken": "t", "eventIds": []}, "eventIds"),
        ({"claimToken": "t", "eventIds": ["e"], "sentAt": "later"}, "sentAt"),
    ],
)
async def test_ack_validation(service, payload, field):
    with pytest.raises(ReminderServiceError) as exc_info:
        await service.ack_sent(payload)

    assert exc_info.value.field == field


@pytest.mark.asyncio
async def test_fail_requires_error(service):
    with pytest.raises(ReminderServiceError) as exc_info:
        await service.fail({"claimToken": "t", "eventIds": ["e"]})

    assert exc_info.value.kind is ErrorKind.VALIDATION
    assert exc_info.value.field == "error"


@pytest.mark.asyncio
async def test_fail_three_times_makes_event_claimable(service, fixed_clock):
    await _create(service)
    claimed = await service.claim_due({"claimerId": "poller-1"})
    request = {
        "claimToken": claimed.claim_token,
        "eventIds": [claimed.events[0].event_id],
        "error": "gateway 503",
    }

    for _ in range(2):
        assert (await service.fail(request)).failed == 1
        assert (await service.claim_due({"claimerId": "poller-2"})).events == []

    assert (await service.fail(request)).failed == 1
    again = await service.claim_due({"claimerId": "poller-2"})
    assert [e.event_id for e in again.events] == [claimed.events[0].event_id]


@pytest.mark.asyncio
async def test_cancel_accepts_id_or_request(service):
    created = await _create(service)

    assert await service.cancel_reminder(created.id) is True
    assert await service.cancel_reminder({"id": "missing"}) is False

    reminder = await service.get_reminder(created.id)
    assert reminder.status == "CANCELLED"
    assert (await service.claim_due({"claimerId": "poller-1"})).events == []


@pytest.mark.asyncio
async def test_get_missing_reminder_is_not_found(service):
    with pytest.raises(ReminderServiceError) as exc_info:
        await service.get_reminder("missing")

    assert exc_info.value.kind is ErrorKind.NOT_FOUND
    assert exc_info.value.to_dict() == {
        "error": "not_found",
        "message": "Reminder missing not found",
    }


@pytest.mark.asyncio
async def test_storage_failure_is_tagged_and_retryable():
    repository = AsyncMock()
    repository.create_reminder.side_effect = ReminderRepositoryError(
        "create_reminder failed: disk I/O error", operation="create_reminder"
    )
    service = ReminderService(repository, FixedClock(NOON))

    with pytest.raises(ReminderServiceError) as exc_info:
        await _create(service)

    error = exc_info.value
    assert error.kind is ErrorKind.STORAGE
    assert error.operation == "create_reminder"
    assert error.retryable is True


@pytest.mark.asyncio
async def test_validation_happens_before_storage():
    repository = AsyncMock()
    service = ReminderService(repository, FixedClock(NOON))

    with pytest.raises(ReminderServiceError):
        await _create(service, trigger_at="not a time")

    repository.create_reminder.assert_not_called()


@pytest.mark.asyncio
async def test_reminder_before_year_1000_is_claimable_and_listable(service):
    created = await _create(service, trigger_at="0999-06-01T00:00:00Z")
    await _create(service, trigger_at="2024-01-01T11:00:00Z")

    assert created.trigger_at == "0999-06-01T00:00:00Z"

    listed = await service.list_reminders()
    assert [r.trigger_at for r in listed.reminders] == [
        "0999-06-01T00:00:00Z",
        "2024-01-01T11:00:00Z",
    ]

    claimed = await service.claim_due({"claimerId": "poller-1", "limit": 1})
    assert [e.reminder_id for e in claimed.events] == [created.id]


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["claim_due", "list_reminders"])
async def test_limit_beyond_sql_integer_is_validation_error(service, operation):
    payload = {"limit": 2**63}
    if operation == "claim_due":
        payload["claimerId"] = "poller-1"

    with pytest.raises(ReminderServiceError) as exc_info:
        await getattr(service, operation)(payload)

    assert exc_info.value.kind is ErrorKind.VALIDATION
    assert exc_info.value.field == "limit"


@pytest.mark.asyncio
async def test_unrecoverable_storage_failure_is_not_retryable():
    repository = AsyncMock()
    repository.claim_due_events.side_effect = ReminderRepositoryError(
        "claim_due_events failed: Python int too large to convert to SQLite INTEGER",
        operation="claim_due_events",
        recoverable=False,
    )
    service = ReminderService(repository, FixedClock(NOON))

    with pytest.raises(ReminderServiceError) as exc_info:
        await service.claim_due({"claimerId": "poller-1"})

    error = exc_info.value
    assert error.kind is ErrorKind.STORAGE
    assert error.operation == "claim_due_events"
    assert error.retryable is False
