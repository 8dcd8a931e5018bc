"""Configuration for the DayStart jobs platform."""

import json
import os
from datetime import timedelta
from typing import Any, Dict, Optional


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid integer in {name}: {raw!r}") from e


class DayStartJobsConfig:
    """Configuration object for DayStart jobs."""

    def __init__(
        self,
        db_dsn: str,
        script_lease_minutes: int = 30,
        audio_lease_minutes: int = 30,
        lease_horizon_hours: int = 6,
        lease_batch_size: int = 50,
        lease_timeout_seconds: int = 10,
        min_desired_length: int = 2,
        max_desired_length: int = 10,
        reaper_batch_size: int = 100,
        max_attempts: int = 3,
        content_ttl_hours: int = 12,
        worker_auth_token: Optional[str] = None,
        per_stage_config: Optional[Dict[str, Any]] = None,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if min_desired_length > max_desired_length:
            raise ValueError(
                f"min_desired_length ({min_desired_length}) exceeds "
                f"max_desired_length ({max_desired_length})"
            )

        self.db_dsn = db_dsn
        self.script_lease_minutes = script_lease_minutes
        self.audio_lease_minutes = audio_lease_minutes
        self.lease_horizon_hours = lease_horizon_hours
        self.lease_batch_size = lease_batch_size
        self.lease_timeout_seconds = lease_timeout_seconds
        self.min_desired_length = min_desired_length
        self.max_desired_length = max_desired_length
        self.reaper_batch_size = reaper_batch_size
        self.max_attempts = max_attempts
        self.content_ttl_hours = content_ttl_hours
        self.worker_auth_token = worker_auth_token

        # Per-stage defaults, overridable per key
        self.per_stage_config: Dict[str, Dict[str, int]] = {
            "script": {
                "lease_minutes": script_lease_minutes,
                "batch_size": lease_batch_size,
            },
            "audio": {
                "lease_minutes": audio_lease_minutes,
                "batch_size": lease_batch_size,
            },
        }
        for stage, overrides in (per_stage_config or {}).items():
            self.per_stage_config.setdefault(stage, {}).update(overrides)

    @property
    def lease_horizon(self) -> timedelta:
        return timedelta(hours=self.lease_horizon_hours)

    @property
    def content_ttl(self) -> timedelta:
        return timedelta(hours=self.content_ttl_hours)

    @classmethod
    def from_env(cls) -> "DayStartJobsConfig":
        """Create config from environment variables."""
        db_dsn = os.getenv("DAYSTART_JOBS_DB_DSN")
        if not db_dsn:
            raise ValueError("DAYSTART_JOBS_DB_DSN environment variable is required")

        per_stage_config_str = os.getenv("DAYSTART_JOBS_PER_STAGE_CONFIG")
        per_stage_config = None
        if per_stage_config_str:
            try:
                per_stage_config = json.loads(per_stage_config_str)
            except json.JSONDecodeError as e:
                raise ValueError(
                    f"Invalid JSON in DAYSTART_JOBS_PER_STAGE_CONFIG: {e}"
                ) from e

        return cls(
            db_dsn=db_dsn,
            script_lease_minutes=_int_env("DAYSTART_JOBS_SCRIPT_LEASE_MINUTES", 30),
            audio_lease_minutes=_int_env("DAYSTART_JOBS_AUDIO_LEASE_MINUTES", 30),
            lease_horizon_hours=_int_env("DAYSTART_JOBS_LEASE_HORIZON_HOURS", 6),
            lease_batch_size=_int_env("DAYSTART_JOBS_LEASE_BATCH_SIZE", 50),
            lease_timeout_seconds=_int_env("DAYSTART_JOBS_LEASE_TIMEOUT_SECONDS", 10),
            min_desired_length=_int_env("DAYSTART_JOBS_MIN_DESIRED_LENGTH", 2),
            max_desired_length=_int_env("DAYSTART_JOBS_MAX_DESIRED_LENGTH", 10),
            reaper_batch_size=_int_env("DAYSTART_JOBS_REAPER_BATCH_SIZE", 100),
            max_attempts=_int_env("DAYSTART_JOBS_MAX_ATTEMPTS", 3),
            content_ttl_hours=_int_env("DAYSTART_JOBS_CONTENT_TTL_HOURS", 12),
            worker_auth_token=os.getenv("DAYSTART_JOBS_WORKER_AUTH_TOKEN"),
            per_stage_config=per_stage_config,
        )

    def get_stage_config(self, stage: str) -> Optional[Dict[str, int]]:
        """Get configuration for a pipeline stage."""
        return self.per_stage_config.get(str(getattr(stage, "value", stage)))

    def get_lease_duration_for_stage(self, stage: str) -> int:
        """Get lease duration in minutes for a pipeline stage."""
        config = self.get_stage_config(stage) or {}
        return config.get("lease_minutes", 30)

    def get_batch_size_for_stage(self, stage: str) -> int:
        """Get how many jobs a worker leases per poll for a stage."""
        config = self.get_stage_config(stage) or {}
        return config.get("batch_size", self.lease_batch_size)
