"""CLI entrypoint for scheduler."""

import argparse
import asyncio
import logging
import signal
import sys

from daystart_jobs.config import DayStartJobsConfig
from daystart_jobs.scheduler import run_scheduler_loop
from daystart_jobs.worker_main import create_db_pool, setup_logging


def main():
    """Main entrypoint for scheduler."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="DayStart Jobs Scheduler")
    parser.add_argument(
        "--loop-interval-seconds",
        type=int,
        default=5,
        help="Sleep between iterations in seconds (default: 5)",
    )
    parser.add_argument(
        "--reaper-interval-seconds",
        type=int,
        default=60,
        help="Time between missed-deadline sweeps in seconds (default: 60)",
    )
    parser.add_argument(
        "--content-purge-interval-seconds",
        type=int,
        default=3600,
        help="Time between content cache purges in seconds (default: 3600)",
    )

    args = parser.parse_args()

    try:
        config = DayStartJobsConfig.from_env()
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    # Setup shutdown event
    shutdown_event = asyncio.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    async def run():
        """Async main function."""
        db_pool = None
        try:
            logger.info("Creating database connection pool...")
            db_pool = await create_db_pool(config)

            logger.info("Starting scheduler loop...")
            await run_scheduler_loop(
                config=config,
                db_pool=db_pool,
                logger=logger,
                loop_interval_seconds=args.loop_interval_seconds,
                reaper_interval_seconds=args.reaper_interval_seconds,
                content_purge_interval_seconds=args.content_purge_interval_seconds,
                shutdown_event=shutdown_event,
            )
        except Exception as e:
            logger.error(f"Fatal error in scheduler: {e}", exc_info=True)
            sys.exit(1)
        finally:
            if db_pool:
                logger.info("Closing database connection pool...")
                await db_pool.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
