"""Background job scheduler.

APScheduler runs the escalation sweep on a fixed interval (one minute by
default). Overlapping ticks are harmless because every transition is a
compare-and-swap, but ``max_instances=1`` keeps the log readable.
"""

import uuid

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wakecheck.config import settings
from wakecheck.database import get_session_maker
from wakecheck.logging_config import correlation_id_ctx, get_logger
from wakecheck.services.escalation_engine import SweepResult, process_due_escalations

logger = get_logger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


async def check_escalations() -> SweepResult | None:
    """Run one escalation sweep tick.

    If the store is unreachable the tick is skipped; due events stay
    PENDING and the next tick picks them up.
    """
    token = correlation_id_ctx.set(f"sweep-{uuid.uuid4().hex[:12]}")
    try:
        async with get_session_maker()() as db:
            return await process_due_escalations(db)
    except Exception as e:
        logger.error(
            "Escalation sweep skipped, store unavailable",
            error=str(e),
        )
        return None
    finally:
        correlation_id_ctx.reset(token)


def start_scheduler() -> AsyncIOScheduler:
    """Start the background job scheduler.

    Returns:
        The started scheduler instance
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return scheduler

    scheduler = AsyncIOScheduler()

    if settings.escalation_check_enabled:
        scheduler.add_job(
            check_escalations,
            trigger=IntervalTrigger(minutes=settings.escalation_check_interval_minutes),
            id="escalation_check",
            name="Alarm Escalation Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "Scheduled escalation sweep job",
            interval_minutes=settings.escalation_check_interval_minutes,
        )

    scheduler.start()
    logger.info("Background scheduler started")

    return scheduler


def stop_scheduler() -> None:
    """Stop the background job scheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Background scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the current scheduler instance, or None if not started."""
    return scheduler

