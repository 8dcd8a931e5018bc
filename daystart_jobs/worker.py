"""Worker logic for DayStart jobs."""

import asyncio
import logging
import random
from typing import Any, Optional, Union
from uuid import uuid4

import asyncpg

from daystart_jobs.config import DayStartJobsConfig
from daystart_jobs.errors import LeaseLostError
from daystart_jobs.models import Job, JobStatus
from daystart_jobs.registry import StageRegistry
from daystart_jobs.service import JobService
from daystart_jobs.transitions import PipelineStage

DEFAULT_ERROR_BACKOFF_POLICY = {"type": "exponential", "base_seconds": 1, "max_seconds": 300}


async def run_worker_loop(
    config: DayStartJobsConfig,
    db_pool: asyncpg.Pool,
    registry: StageRegistry,
    stage: Union[PipelineStage, str],
    logger: logging.Logger,
    worker_id: Optional[str] = None,
    batch_size: Optional[int] = None,
    poll_interval_seconds: float = 5,
    error_backoff_policy: Optional[dict[str, Any]] = None,
    shutdown_event: asyncio.Event = None,
) -> None:
    """
    Run the worker loop that leases and processes jobs for one pipeline stage.

    Args:
        config: DayStart jobs configuration
        db_pool: Database connection pool
        registry: Stage handler registry
        stage: Pipeline stage this worker runs ("script" or "audio")
        logger: Logger instance
        worker_id: Lease holder identity (generated if not provided)
        batch_size: Maximum jobs to lease per poll
        poll_interval_seconds: Sleep between polls when nothing is eligible
        error_backoff_policy: Backoff policy applied after loop errors
        shutdown_event: Optional event to signal shutdown
    """
    job_service = JobService(config, db_pool, logger)
    stage = PipelineStage(stage)
    worker_id = worker_id or f"{stage.value}-worker-{uuid4()}"
    error_backoff_policy = error_backoff_policy or DEFAULT_ERROR_BACKOFF_POLICY
    consecutive_errors = 0

    logger.info(f"Starting {stage.value} worker loop as {worker_id}")

    while True:
        # Check for shutdown signal
        if shutdown_event and shutdown_event.is_set():
            logger.info("Shutdown signal received, exiting worker loop")
            break

        try:
            jobs = await asyncio.wait_for(
                job_service.lease_jobs(stage.lease_status, worker_id, limit=batch_size),
                timeout=config.lease_timeout_seconds,
            )
            consecutive_errors = 0

            if not jobs:
                logger.debug(f"No {stage.lease_status.value} jobs eligible")
                await _sleep(_jittered(poll_interval_seconds), shutdown_event)
                continue

            for job in jobs:
                if shutdown_event and shutdown_event.is_set():
                    # Remaining leases expire and are re-offered to other workers
                    break
                await process_leased_job(job_service, registry, stage, job, worker_id, logger)

        except asyncio.TimeoutError:
            consecutive_errors += 1
            logger.warning(
                f"Leasing timed out after {config.lease_timeout_seconds}s "
                f"(consecutive errors: {consecutive_errors})"
            )
            await _sleep(
                _calculate_backoff_with_jitter(error_backoff_policy, consecutive_errors),
                shutdown_event,
            )
        except Exception as e:
            consecutive_errors += 1
            logger.error(f"Error in worker loop: {str(e)}", exc_info=True)
            await _sleep(
                _calculate_backoff_with_jitter(error_backoff_policy, consecutive_errors),
                shutdown_event,
            )


async def process_leased_job(
    job_service: JobService,
    registry: StageRegistry,
    stage: PipelineStage,
    job: Job,
    worker_id: str,
    logger: logging.Logger,
) -> Optional[JobStatus]:
    """
    Run the stage handler for one leased job and report the outcome.

    Returns the status the job was completed with, or None when the lease was
    lost and the result discarded.
    """
    handler = registry.get_handler(stage)
    if not handler:
        logger.error(f"No handler registered for stage {stage.value}")
        return await _complete(
            job_service,
            job,
            worker_id,
            JobStatus.FAILED,
            logger,
            failure_reason=f"No handler for stage {stage.value}",
        )

    logger.info(
        f"Executing {stage.value} stage for job {job.job_id} (attempt={job.attempt_count})"
    )

    try:
        ctx = {"job": job, "logger": logger, "worker_id": worker_id, "stage": stage}
        artifact = await handler(ctx, job)
    except Exception as e:
        logger.error(f"Job {job.job_id} {stage.value} stage failed: {str(e)}", exc_info=True)
        missed = job_service.clock() > job.window_end
        return await _complete(
            job_service,
            job,
            worker_id,
            JobStatus.FAILED_MISSED if missed else JobStatus.FAILED,
            logger,
            failure_reason=f"{type(e).__name__}: {str(e)}",
        )

    if not artifact:
        return await _complete(
            job_service,
            job,
            worker_id,
            JobStatus.FAILED,
            logger,
            failure_reason=f"{stage.value} handler returned no output",
        )

    if stage == PipelineStage.SCRIPT:
        artifacts = {"script": artifact}
    else:
        artifacts = {"audio_path": artifact}

    return await _complete(
        job_service, job, worker_id, stage.success_status, logger, **artifacts
    )


async def _complete(
    job_service: JobService,
    job: Job,
    worker_id: str,
    new_status: JobStatus,
    logger: logging.Logger,
    **kwargs: Any,
) -> Optional[JobStatus]:
    try:
        await job_service.complete_step(job.job_id, worker_id, new_status, **kwargs)
    except LeaseLostError:
        logger.warning(f"Abandoning job {job.job_id}: lease no longer held by {worker_id}")
        return None
    return new_status


async def _sleep(delay: float, shutdown_event: Optional[asyncio.Event]) -> None:
    """Sleep for ``delay`` seconds, waking early on shutdown."""
    if shutdown_event is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass


def _jittered(delay: float) -> float:
    """Apply +/-20% jitter so idle workers do not poll in lockstep."""
    return max(0.1, delay * (1.0 + random.uniform(-0.2, 0.2)))


def _calculate_backoff_with_jitter(backoff_policy: dict[str, Any], attempt: int) -> float:
    """
    Calculate backoff delay with jitter based on policy and attempt number.

    Args:
        backoff_policy: Backoff policy configuration
        attempt: Consecutive failure count (1-indexed)

    Returns:
        Backoff delay in seconds with jitter applied
    """
    return _jittered(_calculate_backoff(backoff_policy, attempt))


def _calculate_backoff(backoff_policy: dict[str, Any], attempt: int) -> int:
    """
    Calculate backoff delay based on policy and attempt number.

    Args:
        backoff_policy: Backoff policy configuration
        attempt: Consecutive failure count (1-indexed)

    Returns:
        Backoff delay in seconds
    """
    policy_type = backoff_policy.get("type", "exponential")
    base_seconds = backoff_policy.get("base_seconds", 1)
    max_seconds = backoff_policy.get("max_seconds", 300)

    if policy_type == "linear":
        delay = base_seconds * attempt
    elif policy_type == "constant":
        delay = base_seconds
    else:
        # Exponential backoff: base * 2^(attempt-1)
        delay = base_seconds * (2 ** (attempt - 1))
    return min(delay, max_seconds)
