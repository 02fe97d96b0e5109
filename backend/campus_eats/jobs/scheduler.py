"""APScheduler job configuration for periodic housekeeping."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from campus_eats.config import get_settings
from campus_eats.services.idempotency import IdempotencyService

logger = logging.getLogger(__name__)


async def purge_idempotency_keys() -> int:
    """Drop idempotency records whose TTL has elapsed."""
    try:
        return await IdempotencyService().purge_expired()
    except Exception:
        logger.exception("Idempotency key purge failed.")
        return 0


def start_scheduler() -> AsyncIOScheduler:
    """Configure and start the APScheduler."""
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        purge_idempotency_keys,
        IntervalTrigger(minutes=settings.idempotency_purge_minutes),
        id="purge_idempotency_keys",
        name="Purge expired idempotency keys",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    return scheduler
