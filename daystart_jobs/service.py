"""High-level service layer for job operations."""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union
from uuid import UUID

import asyncpg
from pydantic import ValidationError

from daystart_jobs.config import DayStartJobsConfig
from daystart_jobs.content import ContentBlockStore
from daystart_jobs.errors import JobValidationError, LeaseLostError
from daystart_jobs.models import (
    Job,
    JobStatus,
    JobStatusView,
    JobSummary,
    LogEntry,
    PreferencesSnapshot,
)
from daystart_jobs.privacy import hash_user_id
from daystart_jobs.store import JobStore
from daystart_jobs.transitions import (
    FAILED_STATUSES,
    PipelineStage,
    client_status,
    leased_status_for,
    validate_completion_target,
)

MISSED_WINDOW_REASON = "Processing window ended before the job completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_aware(name: str, value: datetime) -> None:
    if value.tzinfo is None or value.utcoffset() is None:
        raise JobValidationError(f"{name} must be timezone-aware")


class JobService:
    """High-level API for job operations."""

    def __init__(
        self,
        config: DayStartJobsConfig,
        db_pool: asyncpg.Pool,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.store = JobStore(db_pool)
        self.content = ContentBlockStore(db_pool, default_ttl=config.content_ttl)
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or _utcnow

    async def create_or_reset_job(
        self,
        *,
        user_id: str,
        local_date: date,
        scheduled_at: datetime,
        window_start: datetime,
        window_end: datetime,
        preferences: Union[PreferencesSnapshot, dict[str, Any]],
    ) -> UUID:
        """
        Create the job for a user's local day, or reset the existing one.

        Args:
            user_id: Client user identifier
            local_date: The user's calendar day the briefing is for
            scheduled_at: When the briefing should be delivered
            window_start: Earliest moment processing may begin
            window_end: Latest acceptable completion time
            preferences: Snapshot of user preferences for this job

        Returns:
            UUID: The job ID (unchanged when an existing job is reset)

        Raises:
            JobValidationError: If the timing or desired length is invalid.
                Nothing is written in that case.
        """
        if not user_id:
            raise JobValidationError("user_id is required")

        if not isinstance(preferences, PreferencesSnapshot):
            try:
                preferences = PreferencesSnapshot(**preferences)
            except ValidationError as e:
                raise JobValidationError(f"Invalid preferences: {e}") from e

        for name, value in (
            ("scheduled_at", scheduled_at),
            ("window_start", window_start),
            ("window_end", window_end),
        ):
            _require_aware(name, value)

        now = self.clock()
        if scheduled_at <= now:
            raise JobValidationError("scheduled_at must be in the future")
        if window_start >= scheduled_at:
            raise JobValidationError("window_start must be before scheduled_at")
        if scheduled_at > window_end:
            raise JobValidationError("window_end must not be before scheduled_at")

        length = preferences.desired_length
        if not self.config.min_desired_length <= length <= self.config.max_desired_length:
            raise JobValidationError(
                f"Invalid desired_length: must be between "
                f"{self.config.min_desired_length}-{self.config.max_desired_length} minutes"
            )

        user_id_hash = hash_user_id(user_id)
        job_id, inserted = await self.store.upsert_job(
            user_id=user_id,
            local_date=local_date,
            scheduled_at=scheduled_at,
            window_start=window_start,
            window_end=window_end,
            preferences=preferences,
            now=now,
            log_meta={
                "user_id_hash": user_id_hash,
                "local_date": local_date.isoformat(),
                "scheduled_at": scheduled_at.isoformat(),
                "desired_length": length,
            },
        )

        action = "Created" if inserted else "Reset"
        self.logger.info(
            f"{action} job {job_id} for user {user_id_hash[:12]}, local_date {local_date}"
        )
        return job_id

    async def get_job(self, job_id: UUID) -> Job:
        """Get a job by ID."""
        return await self.store.get_job(job_id)

    async def get_job_status(
        self,
        *,
        job_id: Optional[UUID] = None,
        user_id: Optional[str] = None,
        local_date: Optional[date] = None,
    ) -> JobStatusView:
        """
        Get the client-facing status of a job.

        Looks the job up by ``job_id``, or by ``user_id`` and ``local_date``.
        The audio pointer is only included once the job is ready.
        """
        if job_id is not None:
            job = await self.store.get_job(job_id)
        elif user_id and local_date:
            job = await self.store.get_job_for_user_date(user_id, local_date)
        else:
            raise JobValidationError("Provide job_id, or user_id and local_date")

        ready = job.status == JobStatus.READY
        return JobStatusView(
            job_id=job.job_id,
            local_date=job.local_date,
            status=job.status,
            client_status=client_status(job.status),
            audio_path=job.audio_path if ready else None,
            audio_ready_at=job.audio_ready_at if ready else None,
        )

    async def list_jobs_in_range(
        self,
        *,
        start_date: date,
        end_date: date,
        user_id: Optional[str] = None,
        limit: int = 500,
    ) -> list[JobSummary]:
        """List job summaries by local date without leasing anything."""
        if start_date > end_date:
            raise JobValidationError("start_date must not be after end_date")
        return await self.store.list_jobs_in_range(
            start_date, end_date, user_id=user_id, limit=limit
        )

    async def lease_jobs(
        self,
        target_status: Union[JobStatus, str],
        worker_id: str,
        lease_duration_minutes: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[Job]:
        """
        Atomically lease jobs for a worker.

        Only ``queued`` and ``script_ready`` can be leased; anything else raises
        InvalidTransitionError. Claimed jobs move to their in-flight status and
        are returned ordered by scheduled_at. An empty list means nothing is
        eligible.
        """
        leased_status = leased_status_for(target_status)
        target_status = JobStatus(target_status)
        stage = next(s for s in PipelineStage if s.lease_status == target_status)

        if not worker_id:
            raise JobValidationError("worker_id is required")
        if lease_duration_minutes is None:
            lease_duration_minutes = self.config.get_lease_duration_for_stage(stage)
        if limit is None:
            limit = self.config.get_batch_size_for_stage(stage)
        if lease_duration_minutes <= 0:
            raise JobValidationError("lease_duration_minutes must be positive")
        if limit <= 0:
            raise JobValidationError("limit must be positive")

        now = self.clock()
        jobs = await self.store.lease_jobs_atomically(
            target_status=target_status,
            leased_status=leased_status,
            worker_id=worker_id,
            now=now,
            lease_until=now + timedelta(minutes=lease_duration_minutes),
            horizon_end=now + self.config.lease_horizon,
            limit=limit,
            max_attempts=self.config.max_attempts,
        )

        if jobs:
            self.logger.info(
                f"Worker {worker_id} leased {len(jobs)} {target_status.value} jobs "
                f"for {lease_duration_minutes} minutes"
            )
        return jobs

    async def complete_step(
        self,
        job_id: UUID,
        worker_id: str,
        new_status: Union[JobStatus, str],
        script: Optional[str] = None,
        audio_path: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """
        Advance or terminate a leased job and release the lease.

        Raises:
            InvalidTransitionError: If ``new_status`` is not a completion target
                or does not follow from the job's current status
            JobValidationError: If the artifact for the target is missing
            LeaseLostError: If the worker no longer holds a live lease. The
                caller must abandon its work rather than retry.
        """
        new_status = validate_completion_target(new_status)
        if new_status == JobStatus.SCRIPT_READY and not script:
            raise JobValidationError("script is required to complete the script stage")
        if new_status == JobStatus.READY and not audio_path:
            raise JobValidationError("audio_path is required to complete the audio stage")

        try:
            job = await self.store.complete_step(
                job_id=job_id,
                worker_id=worker_id,
                new_status=new_status,
                now=self.clock(),
                script=script,
                audio_path=audio_path,
                failure_reason=failure_reason,
            )
        except LeaseLostError:
            self.logger.warning(
                f"Worker {worker_id} lost its lease on job {job_id}, "
                f"discarding {new_status.value} result"
            )
            raise

        if new_status in FAILED_STATUSES:
            self.logger.error(
                f"Job {job_id} {new_status.value}: {failure_reason or 'Unknown error'}"
            )
        else:
            self.logger.info(f"Job {job_id} advanced to {job.status.value}")
        return True

    async def mark_downloaded(self, job_id: UUID, user_id: str) -> Job:
        """Record that the client downloaded the ready audio."""
        job = await self.store.mark_downloaded(job_id, user_id, self.clock())
        self.logger.info(f"Job {job_id} audio downloaded")
        return job

    async def reap_missed_jobs(self, limit: Optional[int] = None) -> list[UUID]:
        """
        Fail unfinished jobs whose processing window has closed.

        This should be called periodically. Returns the ids of jobs moved to
        failed_missed.
        """
        jobs = await self.store.reap_missed_jobs(
            now=self.clock(),
            limit=limit or self.config.reaper_batch_size,
            failure_reason=MISSED_WINDOW_REASON,
        )
        if jobs:
            self.logger.error(f"Marked {len(jobs)} jobs as failed_missed")
        return [job.job_id for job in jobs]

    async def purge_expired_content(self) -> int:
        """Remove expired content blocks."""
        count = await self.content.purge_expired(now=self.clock())
        if count > 0:
            self.logger.info(f"Purged {count} expired content blocks")
        return count

    async def list_job_logs(self, job_id: UUID, limit: int = 100) -> list[LogEntry]:
        """List structured log entries for a job, newest first."""
        return await self.store.list_logs(job_id, limit=limit)
