"""CLI entrypoint and programmatic interface for worker."""

import argparse
import asyncio
import importlib
import logging
import os
import signal
import sys
from typing import Optional

import asyncpg

from daystart_jobs.config import DayStartJobsConfig
from daystart_jobs.registry import StageRegistry, stage_registry
from daystart_jobs.transitions import PipelineStage
from daystart_jobs.worker import run_worker_loop


def setup_logging():
    """Setup logging configuration."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def create_db_pool(config: DayStartJobsConfig):
    """Create database connection pool."""
    return await asyncpg.create_pool(
        config.db_dsn,
        min_size=2,
        max_size=10,
        command_timeout=config.lease_timeout_seconds,
    )


def load_handlers(handlers_module: Optional[str] = None) -> bool:
    """Load stage handlers from the given or configured module."""
    handlers_module = handlers_module or os.getenv("DAYSTART_JOBS_HANDLERS_MODULE")
    if not handlers_module:
        logging.warning(
            "DAYSTART_JOBS_HANDLERS_MODULE not set, no handlers will be available"
        )
        return False
    try:
        importlib.import_module(handlers_module)
    except ImportError as e:
        logging.warning(f"Failed to import handlers module {handlers_module}: {e}")
        return False
    logging.info(f"Loaded handlers from {handlers_module}")
    return True


async def run_worker(
    stage: str,
    config: Optional[DayStartJobsConfig] = None,
    db_pool=None,
    registry: Optional[StageRegistry] = None,
    logger: Optional[logging.Logger] = None,
    shutdown_event: Optional[asyncio.Event] = None,
    worker_id: Optional[str] = None,
    batch_size: Optional[int] = None,
    poll_interval_seconds: float = 5,
    handlers_module: Optional[str] = None,
):
    """
    Run the worker programmatically.

    Args:
        stage: Pipeline stage to process ("script" or "audio")
        config: DayStartJobsConfig instance. If None, will load from environment.
        db_pool: Database connection pool. If None, will create from config.
        registry: StageRegistry instance. If None, will use global stage_registry.
        logger: Logger instance. If None, will create default logger.
        shutdown_event: Optional asyncio.Event for graceful shutdown.
        worker_id: Lease holder identity. Generated if None.
        batch_size: Max jobs to lease per poll.
        poll_interval_seconds: Idle sleep between polls.
        handlers_module: Module path to load handlers from. If None, uses
            DAYSTART_JOBS_HANDLERS_MODULE env var.

    Example:
        ```python
        from daystart_jobs import DayStartJobsConfig, stage_registry
        from daystart_jobs.worker_main import run_worker
        import asyncio

        config = DayStartJobsConfig.from_env()
        asyncio.run(run_worker(
            stage="script",
            config=config,
            registry=stage_registry,
            handlers_module="myapp.daystart.handlers"
        ))
        ```
    """
    if config is None:
        config = DayStartJobsConfig.from_env()

    if logger is None:
        logger = logging.getLogger(__name__)

    if registry is None:
        registry = stage_registry

    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    load_handlers(handlers_module)

    db_pool_provided = db_pool is not None
    if db_pool is None:
        db_pool = await create_db_pool(config)

    try:
        await run_worker_loop(
            config=config,
            db_pool=db_pool,
            registry=registry,
            stage=stage,
            logger=logger,
            worker_id=worker_id,
            batch_size=batch_size,
            poll_interval_seconds=poll_interval_seconds,
            shutdown_event=shutdown_event,
        )
    finally:
        if not db_pool_provided and db_pool:
            await db_pool.close()


def main():
    """Main entrypoint for worker."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="DayStart Jobs Worker")
    parser.add_argument(
        "--stage",
        required=True,
        choices=[stage.value for stage in PipelineStage],
        help="Pipeline stage to process",
    )
    parser.add_argument(
        "--worker-id",
        default=None,
        help="Lease holder identity (default: generated)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Max jobs to lease per poll (default: from config)",
    )
    parser.add_argument(
        "--poll-interval-seconds",
        type=float,
        default=5,
        help="Idle sleep between polls in seconds (default: 5)",
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
        try:
            logger.info(f"Starting worker for stage: {args.stage}...")
            await run_worker(
                stage=args.stage,
                config=config,
                registry=stage_registry,
                logger=logger,
                shutdown_event=shutdown_event,
                worker_id=args.worker_id,
                batch_size=args.batch_size,
                poll_interval_seconds=args.poll_interval_seconds,
            )
        except Exception as e:
            logger.error(f"Fatal error in worker: {e}", exc_info=True)
            sys.exit(1)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
