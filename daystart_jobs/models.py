"""Data models for DayStart jobs."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Job status values."""

    QUEUED = "queued"
    SCRIPT_PROCESSING = "script_processing"
    SCRIPT_READY = "script_ready"
    AUDIO_PROCESSING = "audio_processing"
    READY = "ready"
    FAILED = "failed"
    FAILED_MISSED = "failed_missed"


class LogLevel(str, Enum):
    """Severity of a persisted log entry."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class ContentType(str, Enum):
    """Kinds of shared upstream content."""

    NEWS = "news"
    SPORTS = "sports"
    STOCKS = "stocks"


class PreferencesSnapshot(BaseModel):
    """User preferences captured when the job is created or reset."""

    preferred_name: Optional[str] = None
    location_data: Optional[Dict[str, Any]] = None
    weather_data: Optional[Dict[str, Any]] = None
    calendar_events: Optional[List[Dict[str, Any]]] = None
    encouragement_preference: Optional[str] = None
    stock_symbols: List[str] = Field(default_factory=list)
    include_weather: bool = True
    include_news: bool = True
    include_sports: bool = True
    include_stocks: bool = True
    include_calendar: bool = True
    include_quotes: bool = True
    desired_voice: str
    desired_length: int


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value else None


class Job:
    """Represents a job record."""

    def __init__(
        self,
        job_id: UUID,
        user_id: str,
        local_date: date,
        scheduled_at: datetime,
        window_start: datetime,
        window_end: datetime,
        status: JobStatus,
        preferences: PreferencesSnapshot,
        attempt_count: int = 0,
        worker_id: Optional[str] = None,
        lease_until: Optional[datetime] = None,
        script: Optional[str] = None,
        script_ready_at: Optional[datetime] = None,
        audio_path: Optional[str] = None,
        audio_ready_at: Optional[datetime] = None,
        downloaded_at: Optional[datetime] = None,
        failure_reason: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.job_id = job_id
        self.user_id = user_id
        self.local_date = local_date
        self.scheduled_at = scheduled_at
        self.window_start = window_start
        self.window_end = window_end
        self.status = JobStatus(status) if isinstance(status, str) else status
        self.preferences = preferences
        self.attempt_count = attempt_count
        self.worker_id = worker_id
        self.lease_until = lease_until
        self.script = script
        self.script_ready_at = script_ready_at
        self.audio_path = audio_path
        self.audio_ready_at = audio_ready_at
        self.downloaded_at = downloaded_at
        self.failure_reason = failure_reason
        self.created_at = created_at
        self.updated_at = updated_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for JSON serialization."""
        return {
            "job_id": str(self.job_id),
            "user_id": self.user_id,
            "local_date": _iso(self.local_date),
            "scheduled_at": _iso(self.scheduled_at),
            "window_start": _iso(self.window_start),
            "window_end": _iso(self.window_end),
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "worker_id": self.worker_id,
            "lease_until": _iso(self.lease_until),
            "preferences": self.preferences.model_dump(),
            "script": self.script,
            "script_ready_at": _iso(self.script_ready_at),
            "audio_path": self.audio_path,
            "audio_ready_at": _iso(self.audio_ready_at),
            "downloaded_at": _iso(self.downloaded_at),
            "failure_reason": self.failure_reason,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class JobSummary:
    """Lightweight job listing used by the re-sync scheduler."""

    def __init__(
        self,
        job_id: UUID,
        local_date: date,
        scheduled_at: datetime,
        status: JobStatus,
    ):
        self.job_id = job_id
        self.local_date = local_date
        self.scheduled_at = scheduled_at
        self.status = JobStatus(status) if isinstance(status, str) else status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": str(self.job_id),
            "local_date": _iso(self.local_date),
            "scheduled_at": _iso(self.scheduled_at),
            "status": self.status.value,
        }


class JobStatusView:
    """
    Client-facing view of a job.

    Only exposes the audio pointer once the job is ready, and never exposes
    the operator-only failure reason.
    """

    def __init__(
        self,
        job_id: UUID,
        local_date: date,
        status: JobStatus,
        client_status: str,
        audio_path: Optional[str] = None,
        audio_ready_at: Optional[datetime] = None,
    ):
        self.job_id = job_id
        self.local_date = local_date
        self.status = status
        self.client_status = client_status
        self.audio_path = audio_path
        self.audio_ready_at = audio_ready_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": str(self.job_id),
            "local_date": _iso(self.local_date),
            "status": self.status.value,
            "client_status": self.client_status,
            "audio_path": self.audio_path,
            "audio_ready_at": _iso(self.audio_ready_at),
        }


class LogEntry:
    """Append-only structured log row attached to a job."""

    def __init__(
        self,
        id: UUID,
        job_id: UUID,
        event: str,
        level: LogLevel,
        message: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        error_details: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ):
        self.id = id
        self.job_id = job_id
        self.event = event
        self.level = LogLevel(level) if isinstance(level, str) else level
        self.message = message
        self.meta = meta
        self.error_details = error_details
        self.created_at = created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "job_id": str(self.job_id),
            "event": self.event,
            "level": self.level.value,
            "message": self.message,
            "meta": self.meta,
            "error_details": self.error_details,
            "created_at": _iso(self.created_at),
        }


class ContentBlock:
    """Cached upstream content shared across users."""

    def __init__(
        self,
        id: UUID,
        content_type: ContentType,
        raw_payload: Dict[str, Any],
        expires_at: datetime,
        region: Optional[str] = None,
        league: Optional[str] = None,
        processed_content: Optional[Dict[str, Any]] = None,
        importance_score: int = 5,
        published_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ):
        self.id = id
        self.content_type = (
            ContentType(content_type) if isinstance(content_type, str) else content_type
        )
        self.raw_payload = raw_payload
        self.expires_at = expires_at
        self.region = region
        self.league = league
        self.processed_content = processed_content
        self.importance_score = importance_score
        self.published_at = published_at
        self.created_at = created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "content_type": self.content_type.value,
            "region": self.region,
            "league": self.league,
            "raw_payload": self.raw_payload,
            "processed_content": self.processed_content,
            "importance_score": self.importance_score,
            "published_at": _iso(self.published_at),
            "created_at": _iso(self.created_at),
            "expires_at": _iso(self.expires_at),
        }
