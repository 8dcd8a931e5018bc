"""FastAPI router for the DayStart jobs HTTP API."""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from dateutil.parser import isoparse
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel

from daystart_jobs.errors import (
    InvalidTransitionError,
    JobNotFoundError,
    JobValidationError,
    LeaseLostError,
)
from daystart_jobs.models import PreferencesSnapshot
from daystart_jobs.service import JobService


logger = logging.getLogger(__name__)


class CreateJobRequest(BaseModel):
    """Request model for creating or resetting a job."""

    user_id: str
    local_date: str  # YYYY-MM-DD
    scheduled_at: str  # ISO8601 datetime string with offset
    window_start: str
    window_end: str
    preferences: PreferencesSnapshot


class CreateJobResponse(BaseModel):
    """Response model for creating a job."""

    job_id: str


class JobStatusResponse(BaseModel):
    """Client-facing job status."""

    job_id: str
    local_date: str
    status: str
    client_status: str
    audio_path: Optional[str] = None
    audio_ready_at: Optional[str] = None


class JobSummaryResponse(BaseModel):
    """Job summary for range listings."""

    job_id: str
    local_date: str
    scheduled_at: str
    status: str


class JobResponse(BaseModel):
    """Response model for full job details."""

    job_id: str
    user_id: str
    local_date: str
    scheduled_at: str
    window_start: str
    window_end: str
    status: str
    attempt_count: int
    worker_id: Optional[str] = None
    lease_until: Optional[str] = None
    preferences: Dict[str, Any]
    script: Optional[str] = None
    script_ready_at: Optional[str] = None
    audio_path: Optional[str] = None
    audio_ready_at: Optional[str] = None
    downloaded_at: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class LogEntryResponse(BaseModel):
    """Response model for a job log entry."""

    id: str
    job_id: str
    event: str
    level: str
    message: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    error_details: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None


class LeaseJobsRequest(BaseModel):
    """Request model for leasing jobs."""

    target_status: str
    worker_id: str
    lease_duration_minutes: Optional[int] = None
    limit: Optional[int] = None


class CompleteStepRequest(BaseModel):
    """Request model for completing a job step."""

    worker_id: str
    new_status: str
    script: Optional[str] = None
    audio_path: Optional[str] = None
    failure_reason: Optional[str] = None


class CompleteStepResponse(BaseModel):
    """Response model for completing a job step."""

    success: bool


class MarkDownloadedRequest(BaseModel):
    """Request model for confirming an audio download."""

    user_id: str


def _parse_datetime(name: str, value: str) -> datetime:
    try:
        return isoparse(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid {name} format: {e}") from e


def _parse_date(name: str, value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise HTTPException(
            status_code=400, detail=f"{name} must be in YYYY-MM-DD format"
        ) from e


def _parse_job_id(job_id: str) -> UUID:
    try:
        return UUID(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid job ID format") from e


def create_jobs_router(
    job_service_factory: Callable[[], JobService],
    auth_token: Optional[str] = None,
) -> APIRouter:
    """
    Create FastAPI router for the DayStart jobs API.

    Args:
        job_service_factory: Callable that returns a JobService instance
        auth_token: Optional auth token for worker and operator endpoints

    Returns:
        APIRouter instance
    """
    router = APIRouter()

    async def get_job_service() -> JobService:
        """Dependency to get JobService instance."""
        return job_service_factory()

    async def verify_auth_token(
        x_daystart_jobs_token: Optional[str] = Header(None, alias="X-DayStart-Jobs-Token")
    ) -> None:
        """Verify auth token if configured."""
        if auth_token:
            if not x_daystart_jobs_token or x_daystart_jobs_token != auth_token:
                raise HTTPException(
                    status_code=401, detail="Invalid or missing auth token"
                )

    @router.post("/jobs", response_model=CreateJobResponse)
    async def create_or_reset_job(
        request: CreateJobRequest,
        job_service: JobService = Depends(get_job_service),
    ):
        """Create the job for a user's local day, or reset the existing one."""
        local_date = _parse_date("local_date", request.local_date)
        scheduled_at = _parse_datetime("scheduled_at", request.scheduled_at)
        window_start = _parse_datetime("window_start", request.window_start)
        window_end = _parse_datetime("window_end", request.window_end)

        try:
            job_id = await job_service.create_or_reset_job(
                user_id=request.user_id,
                local_date=local_date,
                scheduled_at=scheduled_at,
                window_start=window_start,
                window_end=window_end,
                preferences=request.preferences,
            )
            return CreateJobResponse(job_id=str(job_id))

        except JobValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error creating job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs/status", response_model=JobStatusResponse)
    async def get_job_status(
        job_id: Optional[str] = Query(None),
        user_id: Optional[str] = Query(None),
        local_date: Optional[str] = Query(None),
        job_service: JobService = Depends(get_job_service),
    ):
        """Get the client-facing status of a job."""
        job_uuid = _parse_job_id(job_id) if job_id else None
        parsed_date = _parse_date("local_date", local_date) if local_date else None

        try:
            view = await job_service.get_job_status(
                job_id=job_uuid, user_id=user_id, local_date=parsed_date
            )
            return JobStatusResponse(**view.to_dict())
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except JobValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error getting job status")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs", response_model=List[JobSummaryResponse])
    async def list_jobs_in_range(
        start_date: str = Query(...),
        end_date: str = Query(...),
        user_id: Optional[str] = Query(None),
        limit: int = Query(500, ge=1, le=5000),
        job_service: JobService = Depends(get_job_service),
    ):
        """List job summaries in a local date range."""
        start = _parse_date("start_date", start_date)
        end = _parse_date("end_date", end_date)

        try:
            summaries = await job_service.list_jobs_in_range(
                start_date=start, end_date=end, user_id=user_id, limit=limit
            )
            return [JobSummaryResponse(**summary.to_dict()) for summary in summaries]
        except JobValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error listing jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/jobs/lease", response_model=List[JobResponse])
    async def lease_jobs(
        request: LeaseJobsRequest,
        job_service: JobService = Depends(get_job_service),
        _: None = Depends(verify_auth_token),
    ):
        """Lease a batch of jobs for a worker."""
        try:
            jobs = await job_service.lease_jobs(
                request.target_status,
                request.worker_id,
                lease_duration_minutes=request.lease_duration_minutes,
                limit=request.limit,
            )
            return [JobResponse(**job.to_dict()) for job in jobs]
        except (InvalidTransitionError, JobValidationError) as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error leasing jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs/{job_id}", response_model=JobResponse)
    async def get_job(
        job_id: str,
        job_service: JobService = Depends(get_job_service),
        _: None = Depends(verify_auth_token),
    ):
        """Get full job details by ID."""
        job_uuid = _parse_job_id(job_id)

        try:
            job = await job_service.get_job(job_uuid)
            return JobResponse(**job.to_dict())
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error getting job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs/{job_id}/logs", response_model=List[LogEntryResponse])
    async def list_job_logs(
        job_id: str,
        limit: int = Query(100, ge=1, le=1000),
        job_service: JobService = Depends(get_job_service),
        _: None = Depends(verify_auth_token),
    ):
        """List structured log entries for a job."""
        job_uuid = _parse_job_id(job_id)

        try:
            entries = await job_service.list_job_logs(job_uuid, limit=limit)
            return [LogEntryResponse(**entry.to_dict()) for entry in entries]
        except Exception as e:
            logger.exception("Error listing job logs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/jobs/{job_id}/complete", response_model=CompleteStepResponse)
    async def complete_step(
        job_id: str,
        request: CompleteStepRequest,
        job_service: JobService = Depends(get_job_service),
        _: None = Depends(verify_auth_token),
    ):
        """Advance or terminate a leased job."""
        job_uuid = _parse_job_id(job_id)

        try:
            success = await job_service.complete_step(
                job_uuid,
                request.worker_id,
                request.new_status,
                script=request.script,
                audio_path=request.audio_path,
                failure_reason=request.failure_reason,
            )
            return CompleteStepResponse(success=success)
        except LeaseLostError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except (InvalidTransitionError, JobValidationError) as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error completing job step")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/jobs/{job_id}/downloaded", response_model=JobStatusResponse)
    async def mark_downloaded(
        job_id: str,
        request: MarkDownloadedRequest,
        job_service: JobService = Depends(get_job_service),
    ):
        """Confirm the client downloaded the ready audio."""
        job_uuid = _parse_job_id(job_id)

        try:
            await job_service.mark_downloaded(job_uuid, request.user_id)
            view = await job_service.get_job_status(job_id=job_uuid)
            return JobStatusResponse(**view.to_dict())
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except InvalidTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error marking job downloaded")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    return router
