"""DayStart job leasing and processing library."""

from daystart_jobs.config import DayStartJobsConfig
from daystart_jobs.content import ContentBlockStore
from daystart_jobs.ddl import JOBS_TABLE_DDL, SCHEMA_DDL
from daystart_jobs.errors import (
    AuthTokenError,
    DayStartJobsError,
    InvalidTransitionError,
    JobNotFoundError,
    JobValidationError,
    LeaseLostError,
    RemoteHttpError,
)
from daystart_jobs.http_client import DayStartJobsHttpClient
from daystart_jobs.models import (
    ContentBlock,
    ContentType,
    Job,
    JobStatus,
    JobStatusView,
    JobSummary,
    LogEntry,
    LogLevel,
    PreferencesSnapshot,
)
from daystart_jobs.registry import StageRegistry, stage_registry
from daystart_jobs.scheduler import run_scheduler_loop
from daystart_jobs.service import JobService
from daystart_jobs.store import JobStore
from daystart_jobs.transitions import PipelineStage
from daystart_jobs.worker import process_leased_job, run_worker_loop

__version__ = "0.1.0"

__all__ = [
    "DayStartJobsConfig",
    "ContentBlockStore",
    "JOBS_TABLE_DDL",
    "SCHEMA_DDL",
    "AuthTokenError",
    "DayStartJobsError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "JobValidationError",
    "LeaseLostError",
    "RemoteHttpError",
    "DayStartJobsHttpClient",
    "ContentBlock",
    "ContentType",
    "Job",
    "JobStatus",
    "JobStatusView",
    "JobSummary",
    "LogEntry",
    "LogLevel",
    "PreferencesSnapshot",
    "StageRegistry",
    "stage_registry",
    "run_scheduler_loop",
    "JobService",
    "JobStore",
    "PipelineStage",
    "process_leased_job",
    "run_worker_loop",
]
