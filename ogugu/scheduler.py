"""
Scheduler module for ogugu.

This module sets up the APScheduler job that runs the feed refresh pass at a
fixed interval. The job never overlaps with itself inside one process.
"""
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ogugu.config import JobConfig, SchedulerConfig

if TYPE_CHECKING:
    from ogugu.context import AppContext

# Set up structured logger
logger = structlog.get_logger()

REFRESH_JOB_ID = "refresh_feeds"


def create_scheduler(config: SchedulerConfig) -> AsyncIOScheduler:
    """Build an (unstarted) AsyncIOScheduler from configuration."""
    return AsyncIOScheduler(
        timezone=config.timezone,
        job_defaults={
            "coalesce": config.coalesce,
            "misfire_grace_time": config.misfire_grace_time,
            "max_instances": config.max_instances,
        },
    )


def schedule_refresh_job(
    scheduler: AsyncIOScheduler,
    app_context: 'AppContext',
    job_config: JobConfig,
) -> str:
    """
    Schedule the periodic refresh pass.

    Args:
        scheduler: The APScheduler instance to use
        app_context: Context passed to the job function
        job_config: Interval and start-up behaviour

    Returns:
        str: The job ID
    """
    # Import here to avoid circular imports
    from ogugu.tasks import run_refresh_pass

    interval_minutes = max(1, job_config.interval_minutes)
    next_run_time = (
        datetime.now() + timedelta(seconds=5)
        if job_config.run_on_start
        else datetime.now() + timedelta(minutes=interval_minutes)
    )

    scheduler.add_job(
        run_refresh_pass,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[app_context],
        id=REFRESH_JOB_ID,
        name="Refresh all feeds",
        replace_existing=True,
        next_run_time=next_run_time,
        max_instances=1,  # Passes must not overlap
        coalesce=True,
    )

    logger.info(
        "Scheduled feed refresh job",
        job_id=REFRESH_JOB_ID,
        interval_minutes=interval_minutes,
        run_on_start=job_config.run_on_start,
    )
    return REFRESH_JOB_ID


def get_all_jobs(scheduler: AsyncIOScheduler) -> List[Dict[str, Any]]:
    """
    Get information about all scheduled jobs.

    Args:
        scheduler: The APScheduler instance to use

    Returns:
        List[Dict[str, Any]]: List of job information dictionaries
    """
    jobs = []
    for job in scheduler.get_jobs():
        next_run = getattr(job, "next_run_time", None)
        jobs.append({
            "id": job.id,
            "name": job.name,
            "function": job.func.__name__,
            "next_run_time": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger),
        })

    return jobs
