"""Unit tests for models module."""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from daystart_jobs.models import (
    ContentBlock,
    ContentType,
    JobStatus,
    JobStatusView,
    JobSummary,
    LogEntry,
    LogLevel,
    PreferencesSnapshot,
)


def test_job_status_enum():
    """Test JobStatus enum values."""
    assert JobStatus.QUEUED.value == "queued"
    assert JobStatus.SCRIPT_PROCESSING.value == "script_processing"
    assert JobStatus.SCRIPT_READY.value == "script_ready"
    assert JobStatus.AUDIO_PROCESSING.value == "audio_processing"
    assert JobStatus.READY.value == "ready"
    assert JobStatus.FAILED.value == "failed"
    assert JobStatus.FAILED_MISSED.value == "failed_missed"


def test_preferences_defaults():
    """Test PreferencesSnapshot defaults for optional fields."""
    prefs = PreferencesSnapshot(desired_voice="voice_1", desired_length=3)

    assert prefs.preferred_name is None
    assert prefs.stock_symbols == []
    assert prefs.include_weather is True
    assert prefs.include_quotes is True


def test_preferences_requires_voice_and_length():
    """Test that voice and length are mandatory."""
    with pytest.raises(ValidationError):
        PreferencesSnapshot(preferred_name="Sam")


def test_job_creation(make_job):
    """Test creating a Job instance."""
    job = make_job(status="script_ready", attempt_count=1)

    assert job.status == JobStatus.SCRIPT_READY
    assert job.attempt_count == 1
    assert job.worker_id is None
    assert job.preferences.desired_voice == "voice_1"


def test_job_to_dict(make_job):
    """Test converting Job to dictionary."""
    job = make_job(script="Good morning", status=JobStatus.SCRIPT_READY)

    job_dict = job.to_dict()

    assert job_dict["job_id"] == str(job.job_id)
    assert job_dict["local_date"] == "2025-03-10"
    assert job_dict["status"] == "script_ready"
    assert job_dict["script"] == "Good morning"
    assert job_dict["lease_until"] is None
    assert job_dict["preferences"]["stock_symbols"] == ["AAPL", "MSFT"]
    assert job_dict["scheduled_at"] == job.scheduled_at.isoformat()


def test_job_summary_to_dict():
    """Test JobSummary serialization."""
    job_id = uuid4()
    scheduled_at = datetime(2025, 3, 10, 6, 0, tzinfo=timezone.utc)
    summary = JobSummary(job_id, date(2025, 3, 10), scheduled_at, "queued")

    assert summary.to_dict() == {
        "job_id": str(job_id),
        "local_date": "2025-03-10",
        "scheduled_at": scheduled_at.isoformat(),
        "status": "queued",
    }


def test_job_status_view_to_dict():
    """Test JobStatusView serialization."""
    job_id = uuid4()
    view = JobStatusView(
        job_id=job_id,
        local_date=date(2025, 3, 10),
        status=JobStatus.AUDIO_PROCESSING,
        client_status="processing",
    )

    view_dict = view.to_dict()

    assert view_dict["status"] == "audio_processing"
    assert view_dict["client_status"] == "processing"
    assert view_dict["audio_path"] is None
    assert "failure_reason" not in view_dict


def test_log_entry_to_dict():
    """Test LogEntry serialization."""
    entry = LogEntry(
        id=uuid4(),
        job_id=uuid4(),
        event="job_created",
        level="info",
        message="Job created for user",
        meta={"reset": False},
    )

    entry_dict = entry.to_dict()

    assert entry.level == LogLevel.INFO
    assert entry_dict["event"] == "job_created"
    assert entry_dict["meta"] == {"reset": False}
    assert entry_dict["created_at"] is None


def test_content_block_to_dict():
    """Test ContentBlock serialization."""
    expires_at = datetime(2025, 3, 10, 16, 0, tzinfo=timezone.utc)
    block = ContentBlock(
        id=uuid4(),
        content_type="sports",
        raw_payload={"headline": "Derby tonight"},
        expires_at=expires_at,
        league="premier-league",
        importance_score=8,
    )

    block_dict = block.to_dict()

    assert block.content_type == ContentType.SPORTS
    assert block_dict["content_type"] == "sports"
    assert block_dict["league"] == "premier-league"
    assert block_dict["importance_score"] == 8
    assert block_dict["expires_at"] == expires_at.isoformat()
