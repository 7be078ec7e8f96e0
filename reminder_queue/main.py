"""
Wiring for the reminder queue: settings -> store -> repository -> service.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from reminder_queue.config import Settings, settings as default_settings
from reminder_queue.db.pool import DatabasePoolManager
from reminder_queue.infrastructure.observability.logging import get_logger
from reminder_queue.repositories.reminder_repository import ReminderRepository
from reminder_queue.services.reminder_service import ReminderService
from reminder_queue.utils.clock import Clock, SystemClock
from reminder_queue.utils.ids import IdGenerator, UuidGenerator

logger = get_logger(__name__)


def create_database(settings: Settings | None = None, clock: Clock | None = None) -> DatabasePoolManager:
    settings = settings or default_settings
    return DatabasePoolManager(
        settings.DATABASE_URL,
        clock=clock,
        pool_config=settings.get_db_pool_config() if settings.is_postgres() else None,
        sqlite_busy_timeout=settings.SQLITE_BUSY_TIMEOUT_SECONDS,
        application_name=f"reminder-queue-{settings.environment}",
    )


def build_reminder_service(
    db: DatabasePoolManager,
    settings: Settings | None = None,
    clock: Clock | None = None,
    id_generator: IdGenerator | None = None,
) -> ReminderService:
    settings = settings or default_settings
    id_generator = id_generator or UuidGenerator()
    repository = ReminderRepository(
        db, id_generator=id_generator, max_attempts=settings.MAX_DELIVERY_ATTEMPTS
    )
    return ReminderService(
        repository,
        clock or SystemClock(),
        claim_timeout_minutes=settings.CLAIM_TIMEOUT_MINUTES,
        default_claim_limit=settings.CLAIM_DEFAULT_LIMIT,
        id_generator=id_generator,
    )


@asynccontextmanager
async def lifespan(
    settings: Settings | None = None,
    clock: Clock | None = None,
    id_generator: IdGenerator | None = None,
) -> AsyncGenerator[ReminderService, None]:
    """
    Open and migrate the store, yield a ready service, close on exit.

    A failed migration propagates: no service is ever handed out against a
    partially migrated schema.
    """
    settings = settings or default_settings
    db = create_database(settings, clock)

    logger.info("Reminder queue starting", environment=settings.environment, backend=db.backend)
    await db.initialize()
    try:
        yield build_reminder_service(db, settings, clock, id_generator)
    finally:
        logger.info("Reminder queue shutting down")
        await db.close()
