"""
Persistence layer for the reminder claim queue.

Every public method is one transaction: commit on success, full rollback on
any failure. Concurrency correctness lives here and only here. Mutations
re-check their preconditions inside the same UPDATE and trust the affected
row count, so competing pollers (threads, tasks or processes sharing one
store) need no in-process lock.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from reminder_queue.db.connection import DbConnection
from reminder_queue.db.helpers import (
    DRIVER_ERRORS,
    DatabaseError,
    execute_query,
    fetch_all,
    fetch_one,
    in_placeholders,
    is_recoverable,
)
from reminder_queue.db.pool import DatabasePoolManager
from reminder_queue.infrastructure.observability.logging import get_logger
from reminder_queue.models.domain import (
    ClaimBatch,
    ClaimedEvent,
    Reminder,
    ReminderEvent,
    ReminderStatus,
)
from reminder_queue.utils.ids import IdGenerator, UuidGenerator
from reminder_queue.utils.timestamps import from_storage, to_storage

logger = get_logger(__name__)

MAX_DELIVERY_ATTEMPTS = 3
MAX_ERROR_LENGTH = 500


class ReminderRepositoryError(DatabaseError):
    """More specific exception for repository failures."""


class ReminderRepository:
    """Atomic data access for reminders and their delivery events."""

    REMINDER_SELECT_COLUMNS = """
        id, title, description, trigger_at, timezone,
        created_at, status, metadata_json
    """

    EVENT_SELECT_COLUMNS = """
        id, reminder_id, trigger_at, claimed_at, claim_token,
        sent_at, attempts, last_error
    """

    def __init__(
        self,
        db: DatabasePoolManager,
        id_generator: IdGenerator | None = None,
        max_attempts: int = MAX_DELIVERY_ATTEMPTS,
    ):
        self.db = db
        self.id_generator = id_generator or UuidGenerator()
        self.max_attempts = max_attempts

    @asynccontextmanager
    async def _transaction(
        self, operation: str, readonly: bool = False
    ) -> AsyncGenerator[DbConnection, None]:
        """Run one transaction; failures surface after rollback as ReminderRepositoryError."""
        try:
            async with self.db.transaction(readonly=readonly) as conn:
                yield conn
        except ReminderRepositoryError:
            raise
        except DatabaseError as e:
            logger.error("Reminder transaction failed", operation=operation, error=str(e))
            raise ReminderRepositoryError(
                f"{operation} failed: {e}", operation=operation, recoverable=e.recoverable
            ) from e
        except DRIVER_ERRORS as e:
            logger.error("Reminder transaction failed", operation=operation, error=str(e))
            raise ReminderRepositoryError(
                f"{operation} failed: {e}", operation=operation, recoverable=is_recoverable(e)
            ) from e

    @staticmethod
    def _row_to_reminder(row: dict | None) -> Reminder | None:
        if not row:
            return None

        return Reminder(
            id=row["id"],
            title=row["title"],
            description=row.get("description"),
            trigger_at=from_storage(row["trigger_at"]),
            timezone=row.get("timezone"),
            created_at=from_storage(row["created_at"]),
            status=ReminderStatus(row["status"]),
            metadata_json=row.get("metadata_json"),
        )

    @staticmethod
    def _row_to_event(row: dict | None) -> ReminderEvent | None:
        if not row:
            return None

        return ReminderEvent(
            id=row["id"],
            reminder_id=row["reminder_id"],
            trigger_at=from_storage(row["trigger_at"]),
            claimed_at=from_storage(row.get("claimed_at")),
            claim_token=row.get("claim_token"),
            sent_at=from_storage(row.get("sent_at")),
            attempts=row["attempts"],
            last_error=row.get("last_error"),
        )

    async def create_reminder(self, reminder: Reminder, event: ReminderEvent) -> None:
        """Insert a reminder together with its delivery event."""

        async with self._transaction("create_reminder") as conn:
            await execute_query(
                """
                INSERT INTO reminders (
                    id, title, description, trigger_at, timezone,
                    created_at, status, metadata_json
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    reminder.id,
                    reminder.title,
                    reminder.description,
                    to_storage(reminder.trigger_at),
                    reminder.timezone,
                    to_storage(reminder.created_at),
                    reminder.status.value,
                    reminder.metadata_json,
                ),
                connection=conn,
            )
            await execute_query(
                """
                INSERT INTO reminder_events (
                    id, reminder_id, trigger_at, claimed_at, claim_token,
                    sent_at, attempts, last_error
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    event.id,
                    event.reminder_id,
                    to_storage(event.trigger_at),
                    to_storage(event.claimed_at) if event.claimed_at else None,
                    event.claim_token,
                    to_storage(event.sent_at) if event.sent_at else None,
                    event.attempts,
                    event.last_error,
                ),
                connection=conn,
            )

        logger.debug("Reminder created", reminder_id=reminder.id, event_id=event.id)

    async def get_reminder(self, reminder_id: str) -> Reminder | None:
        """Return the reminder row if it exists."""

        async with self._transaction("get_reminder", readonly=True) as conn:
            row = await fetch_one(
                f"SELECT {self.REMINDER_SELECT_COLUMNS} FROM reminders WHERE id = %s",
                (reminder_id,),
                connection=conn,
            )
        return self._row_to_reminder(row)

    async def get_event(self, event_id: str) -> ReminderEvent | None:
        """Return the event row if it exists."""

        async with self._transaction("get_event", readonly=True) as conn:
            row = await fetch_one(
                f"SELECT {self.EVENT_SELECT_COLUMNS} FROM reminder_events WHERE id = %s",
                (event_id,),
                connection=conn,
            )
        return self._row_to_event(row)

    async def list_reminders(
        self,
        status: ReminderStatus | None = None,
        from_: datetime | None = None,
        to: datetime | None = None,
        limit: int | None = None,
    ) -> list[Reminder]:
        """
        List reminders ordered by trigger time.

        Args:
            status: Exact status match
            from_: Inclusive lower bound on trigger_at
            to: Inclusive upper bound on trigger_at
            limit: Row cap, None for all rows
        """
        conditions: list[str] = []
        params: list = []

        if status is not None:
            conditions.append("status = %s")
            params.append(status.value)
        if from_ is not None:
            conditions.append("trigger_at >= %s")
            params.append(to_storage(from_))
        if to is not None:
            conditions.append("trigger_at <= %s")
            params.append(to_storage(to))

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        limit_clause = ""
        if limit is not None:
            limit_clause = "LIMIT %s"
            params.append(limit)

        query = f"""
            SELECT {self.REMINDER_SELECT_COLUMNS}
            FROM reminders
            {where_clause}
            ORDER BY trigger_at ASC, id ASC
            {limit_clause}
        """

        async with self._transaction("list_reminders", readonly=True) as conn:
            rows = await fetch_all(query, tuple(params), connection=conn)

        return [self._row_to_reminder(row) for row in rows]

    async def cancel_reminder(self, reminder_id: str) -> bool:
        """
        Cancel a reminder and drop its undelivered events.

        Delivered events (sent_at set) are kept as history.

        Returns:
            True if the reminder exists
        """

        async with self._transaction("cancel_reminder") as conn:
            updated = await execute_query(
                "UPDATE reminders SET status = %s WHERE id = %s",
                (ReminderStatus.CANCELLED.value, reminder_id),
                connection=conn,
            )
            deleted = await execute_query(
                "DELETE FROM reminder_events WHERE reminder_id = %s AND sent_at IS NULL",
                (reminder_id,),
                connection=conn,
            )

        logger.debug(
            "Reminder cancelled",
            reminder_id=reminder_id,
            found=updated > 0,
            events_deleted=deleted,
        )
        return updated > 0

    async def claim_due_events(
        self,
        now: datetime,
        limit: int,
        claimer_id: str,
        claim_timeout_minutes: int,
    ) -> ClaimBatch:
        """
        Lease up to ``limit`` eligible events to one caller.

        An event is eligible when it is unsent, due, owned by a PENDING
        reminder, and either unclaimed or claimed before
        ``now - claim_timeout_minutes``. The candidate SELECT and the
        claiming UPDATE apply the same predicate; rows taken by a concurrent
        claimer in between simply do not match the UPDATE. If nothing is
        updated the race was lost and an empty batch is returned. Callers
        poll again rather than retry.

        Returns:
            ClaimBatch with a fresh token, or ClaimBatch.empty()
        """
        if limit < 1:
            return ClaimBatch.empty()

        claim_token = self.id_generator.new_id()
        now_text = to_storage(now)
        expiry_boundary = to_storage(now - timedelta(minutes=claim_timeout_minutes))

        async with self._transaction("claim_due_events") as conn:
            candidates = await fetch_all(
                """
                SELECT e.id
                FROM reminder_events e
                INNER JOIN reminders r ON e.reminder_id = r.id
                WHERE e.sent_at IS NULL
                  AND e.trigger_at <= %s
                  AND r.status = %s
                  AND (e.claimed_at IS NULL OR e.claimed_at < %s)
                ORDER BY e.trigger_at ASC, e.id ASC
                LIMIT %s
                """,
                (now_text, ReminderStatus.PENDING.value, expiry_boundary, limit),
                connection=conn,
            )

            if not candidates:
                return ClaimBatch.empty()

            event_ids = [row["id"] for row in candidates]
            claimed_count = await execute_query(
                f"""
                UPDATE reminder_events
                SET claimed_at = %s, claim_token = %s
                WHERE id IN ({in_placeholders(event_ids)})
                  AND sent_at IS NULL
                  AND (claimed_at IS NULL OR claimed_at < %s)
                """,
                (now_text, claim_token, *event_ids, expiry_boundary),
                connection=conn,
            )

            if claimed_count == 0:
                logger.debug(
                    "Lost claim race, no events claimed",
                    claimer_id=claimer_id,
                    candidates=len(event_ids),
                )
                return ClaimBatch.empty()

            rows = await fetch_all(
                """
                SELECT e.id AS event_id, e.reminder_id, e.attempts, e.claim_token,
                       r.title, r.description, r.trigger_at, r.timezone
                FROM reminder_events e
                INNER JOIN reminders r ON e.reminder_id = r.id
                WHERE e.claim_token = %s
                ORDER BY e.trigger_at ASC, e.id ASC
                """,
                (claim_token,),
                connection=conn,
            )

        events = [
            ClaimedEvent(
                event_id=row["event_id"],
                reminder_id=row["reminder_id"],
                title=row["title"],
                description=row.get("description"),
                trigger_at=from_storage(row["trigger_at"]),
                timezone=row.get("timezone"),
                claim_token=row["claim_token"],
                attempts=row["attempts"],
            )
            for row in rows
        ]

        logger.debug(
            "Claimed due events",
            claimer_id=claimer_id,
            claim_token=claim_token,
            claimed=len(events),
            candidates=len(event_ids),
        )
        return ClaimBatch(claim_token=claim_token, events=events)

    async def acknowledge_sent(
        self, claim_token: str, event_ids: list[str], sent_at: datetime
    ) -> int:
        """
        Mark claimed events as delivered.

        Only rows still holding ``claim_token`` and not yet sent are touched,
        so repeating an acknowledgement returns 0.

        Returns:
            Number of events acknowledged
        """
        if not event_ids:
            return 0

        async with self._transaction("acknowledge_sent") as conn:
            updated = await execute_query(
                f"""
                UPDATE reminder_events
                SET sent_at = %s
                WHERE id IN ({in_placeholders(event_ids)})
                  AND claim_token = %s
                  AND sent_at IS NULL
                """,
                (to_storage(sent_at), *event_ids, claim_token),
                connection=conn,
            )

        logger.debug("Acknowledged sent events", claim_token=claim_token, acknowledged=updated)
        return updated

    async def mark_failed(
        self,
        claim_token: str,
        event_ids: list[str],
        error: str,
        claim_timeout_minutes: int,
    ) -> int:
        """
        Record a delivery failure for claimed events.

        Attempts are incremented even if the lease has already expired. Once
        the incremented count reaches ``max_attempts`` the claim is released
        so the event is eligible immediately; below that the lease is left
        to expire at its original time.

        Returns:
            Number of events updated
        """
        if not event_ids:
            return 0

        truncated_error = (error or "")[:MAX_ERROR_LENGTH]

        async with self._transaction("mark_failed") as conn:
            updated = await execute_query(
                f"""
                UPDATE reminder_events
                SET attempts = attempts + 1,
                    last_error = %s,
                    claimed_at = CASE WHEN attempts + 1 >= %s THEN NULL ELSE claimed_at END,
                    claim_token = CASE WHEN attempts + 1 >= %s THEN NULL ELSE claim_token END
                WHERE id IN ({in_placeholders(event_ids)})
                  AND claim_token = %s
                """,
                (truncated_error, self.max_attempts, self.max_attempts, *event_ids, claim_token),
                connection=conn,
            )

        logger.debug(
            "Marked events failed",
            claim_token=claim_token,
            failed=updated,
            claim_timeout_minutes=claim_timeout_minutes,
        )
        return updated
