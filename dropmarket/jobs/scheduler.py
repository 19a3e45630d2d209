"""
APScheduler Configuration

Background job scheduler for the drop lifecycle:
- activate APPROVED drops whose start_time has passed
- close ACTIVE/INACTIVE drops whose end_time has passed and resume
  settlement of COMPLETED drops left half done

Both jobs are idempotent, coalesced, and run one instance at a time.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from dropmarket.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,
}

scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


def start_scheduler():
    """Start the background job scheduler with the drop lifecycle jobs."""
    if not settings.SCHEDULER_ENABLED:
        logger.info("Background job scheduler disabled")
        return

    if not scheduler.running:
        from dropmarket.jobs.drop_jobs import activate_scheduled_drops, close_ended_drops

        scheduler.add_job(
            activate_scheduled_drops,
            'interval',
            minutes=settings.DROP_LIFECYCLE_INTERVAL_MINUTES,
            id='activate_scheduled_drops',
            name='Activate Scheduled Drops',
            replace_existing=True,
        )

        scheduler.add_job(
            close_ended_drops,
            'interval',
            minutes=settings.DROP_LIFECYCLE_INTERVAL_MINUTES,
            id='close_ended_drops',
            name='Close Ended Drops',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")
