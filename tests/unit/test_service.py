"""Unit tests for service module."""

import pytest
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from daystart_jobs.config import DayStartJobsConfig
from daystart_jobs.errors import (
    InvalidTransitionError,
    JobNotFoundError,
    JobValidationError,
    LeaseLostError,
)
from daystart_jobs.models import JobStatus, PreferencesSnapshot
from daystart_jobs.privacy import hash_user_id
from daystart_jobs.service import MISSED_WINDOW_REASON, JobService


@pytest.fixture
def config():
    """Create a test config."""
    return DayStartJobsConfig(db_dsn="postgresql://localhost/test")


@pytest.fixture
def mock_db_pool():
    """Create a mock database pool."""
    pool = AsyncMock()
    return pool


@pytest.fixture
def service(config, mock_db_pool, fixed_now):
    """Create a JobService instance with a fixed clock."""
    return JobService(config, mock_db_pool, clock=lambda: fixed_now)


@pytest.fixture
def timing(fixed_now):
    """Valid scheduling arguments relative to the fixed clock."""
    scheduled_at = fixed_now + timedelta(hours=3)
    return {
        "local_date": date(2025, 3, 10),
        "scheduled_at": scheduled_at,
        "window_start": scheduled_at - timedelta(hours=2),
        "window_end": scheduled_at + timedelta(hours=1),
    }


@pytest.mark.asyncio
async def test_create_or_reset_job_success(service, timing, sample_preferences):
    """Test successful job creation."""
    job_id = uuid4()

    with patch.object(service.store, "upsert_job", return_value=(job_id, True)) as mock_upsert:
        result = await service.create_or_reset_job(
            user_id="user-123", preferences=sample_preferences, **timing
        )

    assert result == job_id
    call_kwargs = mock_upsert.call_args[1]
    assert call_kwargs["user_id"] == "user-123"
    assert call_kwargs["scheduled_at"] == timing["scheduled_at"]
    assert isinstance(call_kwargs["preferences"], PreferencesSnapshot)
    assert call_kwargs["preferences"].stock_symbols == ["AAPL", "MSFT"]


@pytest.mark.asyncio
async def test_create_or_reset_job_logs_only_hashed_user_id(
    service, timing, sample_preferences
):
    """Test that the persisted log metadata never carries the raw user id."""
    with patch.object(service.store, "upsert_job", return_value=(uuid4(), False)) as mock_upsert:
        await service.create_or_reset_job(
            user_id="user-123", preferences=sample_preferences, **timing
        )

    log_meta = mock_upsert.call_args[1]["log_meta"]
    assert log_meta["user_id_hash"] == hash_user_id("user-123")
    assert log_meta["desired_length"] == 5
    assert "user-123" not in log_meta.values()


@pytest.mark.asyncio
async def test_create_or_reset_job_accepts_snapshot(service, timing, sample_preferences):
    """Test that a PreferencesSnapshot is passed through unchanged."""
    prefs = PreferencesSnapshot(**sample_preferences)

    with patch.object(service.store, "upsert_job", return_value=(uuid4(), True)) as mock_upsert:
        await service.create_or_reset_job(user_id="user-123", preferences=prefs, **timing)

    assert mock_upsert.call_args[1]["preferences"] is prefs


@pytest.mark.asyncio
async def test_create_or_reset_job_invalid_preferences(service, timing):
    """Test that malformed preferences are rejected before any write."""
    with patch.object(service.store, "upsert_job") as mock_upsert:
        with pytest.raises(JobValidationError, match="Invalid preferences"):
            await service.create_or_reset_job(
                user_id="user-123", preferences={"desired_length": 5}, **timing
            )

    mock_upsert.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("desired_length", [1, 11])
async def test_create_or_reset_job_desired_length_out_of_range(
    service, timing, sample_preferences, desired_length
):
    """Test the desired length bounds."""
    sample_preferences["desired_length"] = desired_length

    with patch.object(service.store, "upsert_job") as mock_upsert:
        with pytest.raises(JobValidationError, match="between 2-10 minutes"):
            await service.create_or_reset_job(
                user_id="user-123", preferences=sample_preferences, **timing
            )

    mock_upsert.assert_not_called()


@pytest.mark.asyncio
async def test_create_or_reset_job_scheduled_in_past(service, timing, fixed_now, sample_preferences):
    """Test that scheduled_at must be in the future."""
    timing["scheduled_at"] = fixed_now - timedelta(minutes=1)
    timing["window_start"] = fixed_now - timedelta(hours=2)

    with patch.object(service.store, "upsert_job") as mock_upsert:
        with pytest.raises(JobValidationError, match="future"):
            await service.create_or_reset_job(
                user_id="user-123", preferences=sample_preferences, **timing
            )

    mock_upsert.assert_not_called()


@pytest.mark.asyncio
async def test_create_or_reset_job_window_start_after_scheduled(
    service, timing, sample_preferences
):
    """Test that window_start must precede scheduled_at."""
    timing["window_start"] = timing["scheduled_at"]

    with pytest.raises(JobValidationError, match="window_start"):
        await service.create_or_reset_job(
            user_id="user-123", preferences=sample_preferences, **timing
        )


@pytest.mark.asyncio
async def test_create_or_reset_job_window_end_before_scheduled(
    service, timing, sample_preferences
):
    """Test that window_end must not precede scheduled_at."""
    timing["window_end"] = timing["scheduled_at"] - timedelta(seconds=1)

    with pytest.raises(JobValidationError, match="window_end"):
        await service.create_or_reset_job(
            user_id="user-123", preferences=sample_preferences, **timing
        )


@pytest.mark.asyncio
async def test_create_or_reset_job_window_end_equal_to_scheduled(
    service, timing, sample_preferences
):
    """Test that a window closing exactly at delivery time is allowed."""
    timing["window_end"] = timing["scheduled_at"]

    with patch.object(service.store, "upsert_job", return_value=(uuid4(), True)):
        await service.create_or_reset_job(
            user_id="user-123", preferences=sample_preferences, **timing
        )


@pytest.mark.asyncio
async def test_create_or_reset_job_requires_aware_datetimes(
    service, timing, sample_preferences
):
    """Test that naive datetimes are rejected."""
    timing["scheduled_at"] = datetime(2025, 3, 10, 7, 0)

    with pytest.raises(JobValidationError, match="timezone-aware"):
        await service.create_or_reset_job(
            user_id="user-123", preferences=sample_preferences, **timing
        )


@pytest.mark.asyncio
async def test_get_job_not_found(service):
    """Test getting a non-existent job."""
    job_id = uuid4()

    with patch.object(
        service.store, "get_job", side_effect=JobNotFoundError(str(job_id))
    ):
        with pytest.raises(JobNotFoundError):
            await service.get_job(job_id)


@pytest.mark.asyncio
async def test_get_job_status_ready_exposes_audio(service, make_job, fixed_now):
    """Test that a ready job exposes its audio pointer."""
    job = make_job(
        status=JobStatus.READY,
        audio_path="audio/user-123/2025-03-10.mp3",
        audio_ready_at=fixed_now,
        failure_reason=None,
    )

    with patch.object(service.store, "get_job", return_value=job):
        view = await service.get_job_status(job_id=job.job_id)

    assert view.client_status == "ready"
    assert view.audio_path == "audio/user-123/2025-03-10.mp3"
    assert view.audio_ready_at == fixed_now


@pytest.mark.asyncio
async def test_get_job_status_hides_audio_until_ready(service, make_job):
    """Test that in-flight jobs report processing without audio."""
    job = make_job(status=JobStatus.AUDIO_PROCESSING, audio_path="partial.mp3")

    with patch.object(service.store, "get_job_for_user_date", return_value=job) as mock_get:
        view = await service.get_job_status(user_id="user-123", local_date=date(2025, 3, 10))

    mock_get.assert_called_once_with("user-123", date(2025, 3, 10))
    assert view.client_status == "processing"
    assert view.audio_path is None


@pytest.mark.asyncio
async def test_get_job_status_requires_lookup_key(service):
    """Test that a lookup key is required."""
    with pytest.raises(JobValidationError):
        await service.get_job_status(user_id="user-123")


@pytest.mark.asyncio
async def test_list_jobs_in_range_rejects_inverted_range(service):
    """Test that start_date after end_date is rejected."""
    with pytest.raises(JobValidationError):
        await service.list_jobs_in_range(
            start_date=date(2025, 3, 11), end_date=date(2025, 3, 10)
        )


@pytest.mark.asyncio
async def test_list_jobs_in_range_passes_filters(service):
    """Test that filters are passed to the store."""
    with patch.object(service.store, "list_jobs_in_range", return_value=[]) as mock_list:
        result = await service.list_jobs_in_range(
            start_date=date(2025, 3, 10),
            end_date=date(2025, 3, 16),
            user_id="user-123",
            limit=7,
        )

    assert result == []
    mock_list.assert_called_once_with(
        date(2025, 3, 10), date(2025, 3, 16), user_id="user-123", limit=7
    )


@pytest.mark.asyncio
async def test_lease_jobs_applies_stage_defaults(service, fixed_now):
    """Test that queued jobs are leased with script stage defaults."""
    with patch.object(service.store, "lease_jobs_atomically", return_value=[]) as mock_lease:
        result = await service.lease_jobs("queued", "worker-1")

    assert result == []
    call_kwargs = mock_lease.call_args[1]
    assert call_kwargs["target_status"] == JobStatus.QUEUED
    assert call_kwargs["leased_status"] == JobStatus.SCRIPT_PROCESSING
    assert call_kwargs["worker_id"] == "worker-1"
    assert call_kwargs["now"] == fixed_now
    assert call_kwargs["lease_until"] == fixed_now + timedelta(minutes=30)
    assert call_kwargs["horizon_end"] == fixed_now + timedelta(hours=6)
    assert call_kwargs["limit"] == 50
    assert call_kwargs["max_attempts"] == 3


@pytest.mark.asyncio
async def test_lease_jobs_overrides(service, fixed_now, make_job):
    """Test explicit lease duration and batch size."""
    jobs = [make_job(status=JobStatus.AUDIO_PROCESSING, worker_id="worker-2")]

    with patch.object(service.store, "lease_jobs_atomically", return_value=jobs) as mock_lease:
        result = await service.lease_jobs(
            JobStatus.SCRIPT_READY, "worker-2", lease_duration_minutes=5, limit=3
        )

    assert result == jobs
    call_kwargs = mock_lease.call_args[1]
    assert call_kwargs["leased_status"] == JobStatus.AUDIO_PROCESSING
    assert call_kwargs["lease_until"] == fixed_now + timedelta(minutes=5)
    assert call_kwargs["limit"] == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["script_processing", "ready", "failed", "unknown"])
async def test_lease_jobs_rejects_non_leasable_status(service, status):
    """Test that only queued and script_ready can be leased."""
    with patch.object(service.store, "lease_jobs_atomically") as mock_lease:
        with pytest.raises(InvalidTransitionError):
            await service.lease_jobs(status, "worker-1")

    mock_lease.assert_not_called()


@pytest.mark.asyncio
async def test_lease_jobs_rejects_non_positive_values(service):
    """Test validation of lease duration, limit and worker id."""
    with pytest.raises(JobValidationError):
        await service.lease_jobs("queued", "worker-1", lease_duration_minutes=0)
    with pytest.raises(JobValidationError):
        await service.lease_jobs("queued", "worker-1", limit=0)
    with pytest.raises(JobValidationError):
        await service.lease_jobs("queued", "")


@pytest.mark.asyncio
async def test_complete_step_success(service, fixed_now, make_job):
    """Test a successful script completion."""
    job_id = uuid4()
    updated = make_job(job_id=job_id, status=JobStatus.SCRIPT_READY, script="Hello")

    with patch.object(service.store, "complete_step", return_value=updated) as mock_complete:
        result = await service.complete_step(job_id, "worker-1", "script_ready", script="Hello")

    assert result is True
    mock_complete.assert_called_once_with(
        job_id=job_id,
        worker_id="worker-1",
        new_status=JobStatus.SCRIPT_READY,
        now=fixed_now,
        script="Hello",
        audio_path=None,
        failure_reason=None,
    )


@pytest.mark.asyncio
async def test_complete_step_requires_artifacts(service):
    """Test that success targets need their artifact."""
    with patch.object(service.store, "complete_step") as mock_complete:
        with pytest.raises(JobValidationError, match="script"):
            await service.complete_step(uuid4(), "worker-1", JobStatus.SCRIPT_READY)
        with pytest.raises(JobValidationError, match="audio_path"):
            await service.complete_step(uuid4(), "worker-1", JobStatus.READY)

    mock_complete.assert_not_called()


@pytest.mark.asyncio
async def test_complete_step_rejects_non_completion_status(service):
    """Test that a worker cannot report a leasable or in-flight status."""
    with pytest.raises(InvalidTransitionError):
        await service.complete_step(uuid4(), "worker-1", "queued")
    with pytest.raises(InvalidTransitionError):
        await service.complete_step(uuid4(), "worker-1", "audio_processing")


@pytest.mark.asyncio
async def test_complete_step_lease_lost_propagates(service):
    """Test that a lost lease is surfaced to the caller."""
    job_id = uuid4()

    with patch.object(
        service.store,
        "complete_step",
        side_effect=LeaseLostError(str(job_id), "worker-1"),
    ):
        with pytest.raises(LeaseLostError):
            await service.complete_step(
                job_id, "worker-1", "ready", audio_path="audio/user-123/2025-03-10.mp3"
            )


@pytest.mark.asyncio
async def test_complete_step_failure(service, make_job):
    """Test reporting a failure with a reason."""
    job_id = uuid4()
    updated = make_job(job_id=job_id, status=JobStatus.FAILED, failure_reason="TTS down")

    with patch.object(service.store, "complete_step", return_value=updated) as mock_complete:
        await service.complete_step(job_id, "worker-1", "failed", failure_reason="TTS down")

    assert mock_complete.call_args[1]["failure_reason"] == "TTS down"


@pytest.mark.asyncio
async def test_mark_downloaded_uses_clock(service, fixed_now, make_job):
    """Test that the download confirmation is stamped with the service clock."""
    job = make_job(status=JobStatus.READY, downloaded_at=fixed_now)

    with patch.object(service.store, "mark_downloaded", return_value=job) as mock_mark:
        result = await service.mark_downloaded(job.job_id, "user-123")

    assert result is job
    mock_mark.assert_called_once_with(job.job_id, "user-123", fixed_now)


@pytest.mark.asyncio
async def test_reap_missed_jobs(service, fixed_now, make_job):
    """Test that the reaper returns the ids of missed jobs."""
    jobs = [make_job(status=JobStatus.FAILED_MISSED) for _ in range(2)]

    with patch.object(service.store, "reap_missed_jobs", return_value=jobs) as mock_reap:
        result = await service.reap_missed_jobs()

    assert result == [job.job_id for job in jobs]
    mock_reap.assert_called_once_with(
        now=fixed_now, limit=100, failure_reason=MISSED_WINDOW_REASON
    )


@pytest.mark.asyncio
async def test_purge_expired_content(service, fixed_now):
    """Test that content purge uses the service clock."""
    with patch.object(service.content, "purge_expired", return_value=4) as mock_purge:
        result = await service.purge_expired_content()

    assert result == 4
    mock_purge.assert_called_once_with(now=fixed_now)


@pytest.mark.asyncio
async def test_list_job_logs(service):
    """Test listing job logs."""
    job_id = uuid4()

    with patch.object(service.store, "list_logs", return_value=[]) as mock_logs:
        result = await service.list_job_logs(job_id, limit=10)

    assert result == []
    mock_logs.assert_called_once_with(job_id, limit=10)


@pytest.mark.asyncio
async def test_lease_jobs_uses_configured_attempt_cap(mock_db_pool, fixed_now):
    """Test that the configured attempt cap reaches the lease query."""
    config = DayStartJobsConfig(db_dsn="postgresql://localhost/test", max_attempts=5)
    service = JobService(config, mock_db_pool, clock=lambda: fixed_now)

    with patch.object(service.store, "lease_jobs_atomically", return_value=[]) as mock_lease:
        await service.lease_jobs("script_ready", "worker-1")

    assert mock_lease.call_args[1]["max_attempts"] == 5
