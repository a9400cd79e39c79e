"""
Background job scheduler for the periodic closed-ticket sync.

Uses APScheduler to run the sync on a cron schedule (SYNC_CRON, evaluated
in SYNC_TIMEZONE). Each run starts from the last run that reached the end
of its window (completed or partial), minus an overlap window. Ids that
failed in a partial run are retried directly by the next run, so one
ticket that keeps failing does not hold the window back. A failed run
does not move the cursor.
"""

import logging
from datetime import timedelta
from typing import Any, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import settings
from app.database import AsyncSessionLocal
from app.events import EventBus
from app.services import SyncInProgressError, SyncResult, get_sync_service
from app.utils.datetime import default_since, format_since

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

# Bus passed to scheduled runs; set by setup_scheduler
_events: Optional[EventBus] = None


async def next_sync_cursor(sync_service) -> str:
    """
    Cursor for the next scheduled run.

    Started-at of the last completed or partial run minus
    SYNC_OVERLAP_MINUTES, or SYNC_DEFAULT_LOOKBACK_DAYS ago when no run has
    finished yet.
    """
    last_run = await sync_service.get_last_finished_run()
    if last_run is None:
        return default_since(settings.SYNC_DEFAULT_LOOKBACK_DAYS)
    return format_since(last_run.started_at - timedelta(minutes=settings.SYNC_OVERLAP_MINUTES))


async def pending_retry_ids(sync_service) -> List[Any]:
    """Ids the last finished run could not mirror."""
    last_run = await sync_service.get_last_finished_run()
    if last_run is None:
        return []
    return [ticket_id for ticket_id in (last_run.failed_ids or []) if ticket_id is not None]


async def closed_ticket_sync_job() -> Optional[SyncResult]:
    """
    Scheduled closed-ticket sync.

    Skipped (with a warning) when a sync is already running.
    """
    async with AsyncSessionLocal() as db:
        sync_service = get_sync_service(db, events=_events)
        try:
            since = await next_sync_cursor(sync_service)
            retry_ids = await pending_retry_ids(sync_service)
            logger.info(
                f"Scheduled sync starting since {since}"
                + (f" with {len(retry_ids)} ticket(s) to retry" if retry_ids else "")
            )
            result = await sync_service.sync_closed_tickets(since, retry_ids=retry_ids)
        except SyncInProgressError:
            logger.warning("Scheduled sync skipped: a sync is already running")
            return None
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}", exc_info=True)
            raise
        finally:
            await sync_service.freshdesk.close()

    logger.info(
        f"Scheduled sync complete: imported={result.imported}, failed={result.failed}"
    )
    return result


def setup_scheduler(events: Optional[EventBus] = None) -> bool:
    """
    Configure and start the background scheduler.

    Does nothing unless SYNC_SCHEDULE_ENABLED is set.

    Args:
        events: Event bus handed to scheduled sync runs

    Returns:
        True if the scheduler is running after the call
    """
    global _events

    if not settings.SYNC_SCHEDULE_ENABLED:
        logger.info("Scheduled sync disabled (SYNC_SCHEDULE_ENABLED=false)")
        return False

    if scheduler.running:
        logger.warning("Scheduler is already running")
        return True

    _events = events
    scheduler.add_job(
        closed_ticket_sync_job,
        CronTrigger.from_crontab(settings.SYNC_CRON, timezone=settings.SYNC_TIMEZONE),
        id="closed_ticket_sync",
        name="Freshdesk Closed Ticket Sync",
        replace_existing=True,
        max_instances=1,
        misfire_grace_time=600,
        coalesce=True
    )

    scheduler.start()
    logger.info(
        f"Background scheduler started ({settings.SYNC_CRON}, {settings.SYNC_TIMEZONE})"
    )
    return True


def shutdown_scheduler():
    """
    Gracefully shutdown the scheduler.
    Waits for running jobs to complete before shutting down.
    """
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background scheduler stopped")


def get_job_status() -> list:
    """
    Get status of all scheduled jobs.

    Returns:
        List of job status dictionaries containing:
        - id: Job identifier
        - name: Human-readable job name
        - next_run: ISO-formatted next run time (or None)
        - trigger: Trigger description
    """
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        }
        for job in scheduler.get_jobs()
    ]
