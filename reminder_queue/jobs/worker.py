"""
Operational job runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable. Jobs:

    migrate  open the store and apply pending migrations
    health   print the store health check as JSON
"""

import asyncio
import json
import os
import sys
from collections.abc import Awaitable, Callable

from reminder_queue.config import settings
from reminder_queue.infrastructure.observability.logging import (
    get_logger,
    log_health_check,
    setup_logging,
)
from reminder_queue.main import create_database

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[int]]


async def run_migrations_job() -> int:
    db = create_database(settings)
    try:
        await db.initialize()
    except Exception as e:
        logger.critical("Migration job failed", error=str(e))
        return 1

    logger.info("Schema is current", schema_version=db.schema_version)
    await db.close()
    return 0


async def run_health_job() -> int:
    db = create_database(settings)
    await db.initialize()
    try:
        health = await db.health_check()
    finally:
        await db.close()

    log_health_check(
        "reminder_database",
        health["healthy"],
        health.get("connection_time_ms", 0.0),
        health.get("error"),
    )
    print(json.dumps(health, indent=2))
    return 0 if health["healthy"] else 1


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "migrate": run_migrations_job,
    "health": run_health_job,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "migrate").strip().lower()


async def run_worker(job_name: str | None = None) -> int:
    """Run the requested job and return its exit code."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting job", job=name)
    return await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    sys.exit(asyncio.run(run_worker(_resolve_job_name())))


if __name__ == "__main__":
    main()
