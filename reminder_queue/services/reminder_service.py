"""
Reminder queue service.

Validates and normalises externally-shaped requests, calls the repository,
and maps results back to response shapes. No storage logic lives here.
Every "now" comes from the injected clock, never from the database.
"""

from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from reminder_queue.errors import not_found, storage_error, validation_error
from reminder_queue.infrastructure.observability.logging import get_logger
from reminder_queue.models.api import (
    AckSentRequest,
    AckSentResponse,
    CancelReminderRequest,
    ClaimDueRequest,
    ClaimDueResponse,
    CreateReminderRequest,
    CreateReminderResponse,
    FailRequest,
    FailResponse,
    ListRemindersRequest,
    ListRemindersResponse,
    ReminderResponse,
    parse_request,
)
from reminder_queue.models.domain import Reminder, ReminderEvent, ReminderStatus
from reminder_queue.repositories.reminder_repository import (
    ReminderRepository,
    ReminderRepositoryError,
)
from reminder_queue.utils.clock import Clock
from reminder_queue.utils.ids import IdGenerator, UuidGenerator
from reminder_queue.utils.timestamps import parse_timestamp, to_rfc3339

logger = get_logger(__name__)

DEFAULT_CLAIM_TIMEOUT_MINUTES = 5
DEFAULT_CLAIM_LIMIT = 10


def parse_status(value: str | None) -> ReminderStatus | None:
    """Case-insensitive status filter, normalised to the upper-case enum name."""
    if value is None:
        return None

    try:
        return ReminderStatus(value.strip().upper())
    except ValueError as e:
        valid = ", ".join(ReminderStatus.names())
        raise validation_error(
            f"Invalid status: {value}. Valid values: {valid}", field="status"
        ) from e


class ReminderService:
    """Orchestrates validated calls into the reminder repository."""

    def __init__(
        self,
        repository: ReminderRepository,
        clock: Clock,
        *,
        claim_timeout_minutes: int = DEFAULT_CLAIM_TIMEOUT_MINUTES,
        default_claim_limit: int = DEFAULT_CLAIM_LIMIT,
        id_generator: IdGenerator | None = None,
    ):
        self.repository = repository
        self.clock = clock
        self.claim_timeout_minutes = claim_timeout_minutes
        self.default_claim_limit = default_claim_limit
        self.id_generator = id_generator or UuidGenerator()

    @asynccontextmanager
    async def _storage_errors(self, operation: str) -> AsyncGenerator[None, None]:
        # The repository has already rolled back when its error reaches here
        try:
            yield
        except ReminderRepositoryError as e:
            logger.error("Reminder storage operation failed", operation=operation, error=str(e))
            raise storage_error(str(e), operation=operation, recoverable=e.recoverable) from e

    async def create_reminder(
        self, request: CreateReminderRequest | Mapping[str, Any]
    ) -> CreateReminderResponse:
        """Create a reminder plus its queued delivery event in one transaction."""
        req = parse_request(CreateReminderRequest, request)
        trigger_at = parse_timestamp(req.trigger_at, "triggerAt")

        now = self.clock.now()
        reminder = Reminder(
            id=self.id_generator.new_id(),
            title=req.title,
            description=req.description,
            trigger_at=trigger_at,
            timezone=req.timezone,
            created_at=now,
            status=ReminderStatus.PENDING,
            metadata_json=req.metadata,
        )
        event = ReminderEvent(
            id=self.id_generator.new_id(),
            reminder_id=reminder.id,
            trigger_at=trigger_at,
        )

        async with self._storage_errors("create_reminder"):
            await self.repository.create_reminder(reminder, event)

        logger.info(
            "Reminder created",
            reminder_id=reminder.id,
            trigger_at=to_rfc3339(trigger_at),
        )
        return CreateReminderResponse(id=reminder.id, trigger_at=to_rfc3339(trigger_at))

    async def list_reminders(
        self, request: ListRemindersRequest | Mapping[str, Any] | None = None
    ) -> ListRemindersResponse:
        req = parse_request(ListRemindersRequest, request or {})
        status = parse_status(req.status)
        from_ = parse_timestamp(req.from_, "from") if req.from_ is not None else None
        to = parse_timestamp(req.to, "to") if req.to is not None else None

        logger.debug(
            "Listing reminders", status=req.status, from_=req.from_, to=req.to, limit=req.limit
        )

        async with self._storage_errors("list_reminders"):
            reminders = await self.repository.list_reminders(
                status=status, from_=from_, to=to, limit=req.limit
            )

        return ListRemindersResponse(
            reminders=[ReminderResponse.from_domain(reminder) for reminder in reminders]
        )

    async def get_reminder(self, reminder_id: str) -> ReminderResponse:
        """Fetch one reminder; NOT_FOUND when it does not exist."""
        if not isinstance(reminder_id, str) or not reminder_id:
            raise validation_error("Missing required field 'id'", field="id")

        async with self._storage_errors("get_reminder"):
            reminder = await self.repository.get_reminder(reminder_id)

        if reminder is None:
            raise not_found(f"Reminder {reminder_id} not found")
        return ReminderResponse.from_domain(reminder)

    async def cancel_reminder(
        self, request: CancelReminderRequest | Mapping[str, Any] | str
    ) -> bool:
        """
        Cancel a reminder. Its undelivered event is removed from the queue.

        Returns:
            True if the reminder exists
        """
        if isinstance(request, str):
            request = {"id": request}
        req = parse_request(CancelReminderRequest, request)

        logger.info("Cancelling reminder", reminder_id=req.id)
        async with self._storage_errors("cancel_reminder"):
            return await self.repository.cancel_reminder(req.id)

    async def claim_due(self, request: ClaimDueRequest | Mapping[str, Any]) -> ClaimDueResponse:
        """
        Claim due events for one poller.

        An empty result (nothing due, or another poller won the race) has
        ``claimToken == ""``.
        """
        req = parse_request(ClaimDueRequest, request)
        now = parse_timestamp(req.now, "now") if req.now is not None else self.clock.now()
        limit = req.limit if req.limit is not None else self.default_claim_limit

        async with self._storage_errors("claim_due_events"):
            batch = await self.repository.claim_due_events(
                now=now,
                limit=limit,
                claimer_id=req.claimer_id,
                claim_timeout_minutes=self.claim_timeout_minutes,
            )

        if batch.events:
            logger.info(
                "Claimed due events",
                claimer_id=req.claimer_id,
                claim_token=batch.claim_token,
                claimed=len(batch.events),
            )
        return ClaimDueResponse.from_batch(batch)

    async def ack_sent(self, request: AckSentRequest | Mapping[str, Any]) -> AckSentResponse:
        """Acknowledge delivery. Repeats return ``acknowledged == 0``."""
        req = parse_request(AckSentRequest, request)
        sent_at = (
            parse_timestamp(req.sent_at, "sentAt") if req.sent_at is not None else self.clock.now()
        )

        async with self._storage_errors("acknowledge_sent"):
            acknowledged = await self.repository.acknowledge_sent(
                claim_token=req.claim_token,
                event_ids=req.event_ids,
                sent_at=sent_at,
            )

        logger.info(
            "Acknowledged sent events",
            claim_token=req.claim_token,
            requested=len(req.event_ids),
            acknowledged=acknowledged,
        )
        return AckSentResponse(acknowledged=acknowledged)

    async def fail(self, request: FailRequest | Mapping[str, Any]) -> FailResponse:
        """Report a delivery failure for claimed events."""
        req = parse_request(FailRequest, request)

        logger.warning(
            "Marking events as failed",
            claim_token=req.claim_token,
            requested=len(req.event_ids),
            error=req.error,
        )
        async with self._storage_errors("mark_failed"):
            failed = await self.repository.mark_failed(
                claim_token=req.claim_token,
                event_ids=req.event_ids,
                error=req.error,
                claim_timeout_minutes=self.claim_timeout_minutes,
            )

        logger.info("Marked events as failed", claim_token=req.claim_token, failed=failed)
        return FailResponse(failed=failed)
