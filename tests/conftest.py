from datetime import UTC, datetime

import pytest
import pytest_asyncio

from reminder_queue.db.pool import DatabasePoolManager
from reminder_queue.models.domain import Reminder, ReminderEvent
from reminder_queue.repositories.reminder_repository import ReminderRepository
from reminder_queue.services.reminder_service import ReminderService
from reminder_queue.utils.clock import FixedClock
from reminder_queue.utils.ids import SequentialIdGenerator

NOON = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def fixed_clock():
    return FixedClock(NOON)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'reminders.db'}"


@pytest_asyncio.fixture
async def db(database_url, fixed_clock):
    manager = DatabasePoolManager(database_url, clock=fixed_clock)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def repository(db):
    return ReminderRepository(db, id_generator=SequentialIdGenerator("token"))


@pytest.fixture
def service(repository, fixed_clock):
    return ReminderService(
        repository,
        fixed_clock,
        claim_timeout_minutes=5,
        id_generator=SequentialIdGenerator("id"),
    )


@pytest.fixture
def make_reminder(repository):
    """Insert a PENDING reminder plus its event directly through the repository."""
    counter = {"n": 0}

    async def _make(trigger_at: datetime, title: str | None = None) -> ReminderEvent:
        counter["n"] += 1
        n = counter["n"]
        reminder = Reminder(
            id=f"rem-{n}",
            title=title or f"Reminder {n}",
            description=None,
            trigger_at=trigger_at,
            timezone="UTC",
            created_at=NOON,
        )
        event = ReminderEvent(id=f"evt-{n}", reminder_id=reminder.id, trigger_at=trigger_at)
        await repository.create_reminder(reminder, event)
        return event

    return _make
