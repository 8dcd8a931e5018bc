"""Scheduler logic for DayStart jobs."""

import asyncio
import logging
from datetime import datetime, timezone

import asyncpg

from daystart_jobs.config import DayStartJobsConfig
from daystart_jobs.service import JobService


async def run_scheduler_loop(
    config: DayStartJobsConfig,
    db_pool: asyncpg.Pool,
    logger: logging.Logger,
    loop_interval_seconds: int = 5,
    reaper_interval_seconds: int = 60,
    content_purge_interval_seconds: int = 3600,
    shutdown_event: asyncio.Event = None,
) -> None:
    """
    Run the scheduler loop that sweeps missed jobs and expired content.

    Jobs whose processing window closed before they finished are moved to
    failed_missed. Expired content blocks are purged on a slower cadence.

    Args:
        config: DayStart jobs configuration
        db_pool: Database connection pool
        logger: Logger instance
        loop_interval_seconds: Time to sleep between iterations
        reaper_interval_seconds: Time between missed-deadline sweeps
        content_purge_interval_seconds: Time between content cache purges
        shutdown_event: Optional event to signal shutdown
    """
    job_service = JobService(config, db_pool, logger)

    logger.info("Starting scheduler loop")

    last_reaper_run = None
    last_purge_run = None

    while True:
        # Check for shutdown signal
        if shutdown_event and shutdown_event.is_set():
            logger.info("Shutdown signal received, exiting scheduler loop")
            break

        now = datetime.now(timezone.utc)

        if (
            last_reaper_run is None
            or (now - last_reaper_run).total_seconds() >= reaper_interval_seconds
        ):
            try:
                missed = await job_service.reap_missed_jobs()
                if missed:
                    logger.info(f"Reaper marked {len(missed)} jobs as failed_missed")
                last_reaper_run = now
            except Exception as e:
                logger.error(f"Error in missed-deadline reaper: {str(e)}", exc_info=True)

        if (
            last_purge_run is None
            or (now - last_purge_run).total_seconds() >= content_purge_interval_seconds
        ):
            try:
                await job_service.purge_expired_content()
                last_purge_run = now
            except Exception as e:
                logger.error(f"Error purging content cache: {str(e)}", exc_info=True)

        # Sleep before next iteration
        await asyncio.sleep(loop_interval_seconds)
