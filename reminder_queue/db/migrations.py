"""
Forward-only schema migrations.

The applied version lives in ``schema_version``. ``run_migrations`` must be
called inside a single transaction: if any statement fails, nothing from
this run is kept and startup must abort.
"""

from dataclasses import dataclass

from reminder_queue.db.helpers import DatabaseError, execute_query, fetch_val
from reminder_queue.db.connection import DbConnection
from reminder_queue.errors import MigrationError
from reminder_queue.infrastructure.observability.logging import get_logger
from reminder_queue.utils.clock import Clock
from reminder_queue.utils.timestamps import to_storage

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Migration:
    version: int
    description: str
    statements: tuple[str, ...]


SCHEMA_VERSION_DDL = """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TEXT NOT NULL
    )
"""

MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        description="reminders and reminder_events tables",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS reminders (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT,
                trigger_at TEXT NOT NULL,
                timezone TEXT,
                created_at TEXT NOT NULL,
                status TEXT NOT NULL CHECK (status IN ('PENDING', 'CANCELLED', 'COMPLETED')),
                metadata_json TEXT
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS reminder_events (
                id TEXT PRIMARY KEY,
                reminder_id TEXT NOT NULL REFERENCES reminders (id),
                trigger_at TEXT NOT NULL,
                claimed_at TEXT,
                claim_token TEXT,
                sent_at TEXT,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_error TEXT
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_reminders_status ON reminders (status)",
            "CREATE INDEX IF NOT EXISTS idx_reminders_trigger_at ON reminders (trigger_at)",
            "CREATE INDEX IF NOT EXISTS idx_events_reminder_id ON reminder_events (reminder_id)",
            "CREATE INDEX IF NOT EXISTS idx_events_trigger_at ON reminder_events (trigger_at)",
            "CREATE INDEX IF NOT EXISTS idx_events_claim_token ON reminder_events (claim_token)",
            "CREATE INDEX IF NOT EXISTS idx_events_claimed_at ON reminder_events (claimed_at)",
        ),
    ),
    Migration(
        version=2,
        description="composite index for the due-event scan",
        statements=(
            "CREATE INDEX IF NOT EXISTS idx_events_due ON reminder_events (sent_at, trigger_at)",
        ),
    ),
)


def latest_version(migrations: tuple[Migration, ...] = MIGRATIONS) -> int:
    return max((m.version for m in migrations), default=0)


async def current_schema_version(connection: DbConnection) -> int:
    version = await fetch_val(
        "SELECT MAX(version) AS version FROM schema_version", connection=connection
    )
    return int(version or 0)


async def run_migrations(
    connection: DbConnection,
    clock: Clock,
    migrations: tuple[Migration, ...] = MIGRATIONS,
) -> int:
    """
    Apply every migration newer than the recorded version.

    Args:
        connection: Connection with an open transaction
        clock: Source of ``applied_at``
        migrations: Ordered migrations (overridable for tests)

    Returns:
        Schema version after the run

    Raises:
        MigrationError: If any step fails. The caller's transaction rolls back.
    """
    ordered = sorted(migrations, key=lambda m: m.version)
    target = None

    try:
        await execute_query(SCHEMA_VERSION_DDL, connection=connection)
        current = await current_schema_version(connection)
        logger.info("Current database schema version", version=current)

        for migration in ordered:
            if migration.version <= current:
                continue

            target = migration.version
            logger.info(
                "Applying migration",
                version=migration.version,
                description=migration.description,
            )
            for statement in migration.statements:
                await execute_query(statement, connection=connection)

            await execute_query(
                "INSERT INTO schema_version (version, applied_at) VALUES (%s, %s)",
                (migration.version, to_storage(clock.now())),
                connection=connection,
            )
            current = migration.version

    except DatabaseError as e:
        logger.error("Migration failed", version=target, error=str(e))
        raise MigrationError(f"Database migration failed: {e}", version=target) from e

    logger.info("Database migrations completed", version=current)
    return current
