"""Database store layer for DayStart jobs."""

import json
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import asyncpg

from daystart_jobs.errors import InvalidTransitionError, JobNotFoundError, LeaseLostError
from daystart_jobs.models import (
    Job,
    JobStatus,
    JobSummary,
    LogEntry,
    LogLevel,
    PreferencesSnapshot,
)
from daystart_jobs.privacy import hash_user_id
from daystart_jobs.transitions import (
    FAILED_STATUSES,
    REAPABLE_STATUSES,
    TransitionActor,
    validate_transition,
)


def _json_or_none(value: Any) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def _decode_json(value: Any) -> Any:
    if value is not None and isinstance(value, str):
        return json.loads(value)
    return value


class JobStore:
    """Database layer for job operations."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def upsert_job(
        self,
        user_id: str,
        local_date: date,
        scheduled_at: datetime,
        window_start: datetime,
        window_end: datetime,
        preferences: PreferencesSnapshot,
        now: datetime,
        log_meta: dict[str, Any],
    ) -> tuple[UUID, bool]:
        """
        Insert a job or fully reset the existing one for (user_id, local_date).

        Returns the job id (kept across resets) and whether the row was newly
        inserted. The ``job_created`` log entry is written in the same
        transaction.
        """
        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    INSERT INTO jobs (
                        job_id, user_id, local_date, scheduled_at, window_start, window_end,
                        status, preferred_name, location_data, weather_data, calendar_events,
                        encouragement_preference, stock_symbols,
                        include_weather, include_news, include_sports, include_stocks,
                        include_calendar, include_quotes,
                        desired_voice, desired_length, created_at, updated_at
                    ) VALUES (
                        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13,
                        $14, $15, $16, $17, $18, $19, $20, $21, $22, $22
                    )
                    ON CONFLICT (user_id, local_date) DO UPDATE SET
                        scheduled_at = EXCLUDED.scheduled_at,
                        window_start = EXCLUDED.window_start,
                        window_end = EXCLUDED.window_end,
                        status = EXCLUDED.status,
                        preferred_name = EXCLUDED.preferred_name,
                        location_data = EXCLUDED.location_data,
                        weather_data = EXCLUDED.weather_data,
                        calendar_events = EXCLUDED.calendar_events,
                        encouragement_preference = EXCLUDED.encouragement_preference,
                        stock_symbols = EXCLUDED.stock_symbols,
                        include_weather = EXCLUDED.include_weather,
                        include_news = EXCLUDED.include_news,
                        include_sports = EXCLUDED.include_sports,
                        include_stocks = EXCLUDED.include_stocks,
                        include_calendar = EXCLUDED.include_calendar,
                        include_quotes = EXCLUDED.include_quotes,
                        desired_voice = EXCLUDED.desired_voice,
                        desired_length = EXCLUDED.desired_length,
                        attempt_count = 0,
                        worker_id = NULL,
                        lease_until = NULL,
                        script = NULL,
                        script_ready_at = NULL,
                        audio_path = NULL,
                        audio_ready_at = NULL,
                        downloaded_at = NULL,
                        failure_reason = NULL,
                        updated_at = EXCLUDED.updated_at
                    RETURNING job_id, (xmax = 0) AS inserted
                    """,
                    uuid4(),
                    user_id,
                    local_date,
                    scheduled_at,
                    window_start,
                    window_end,
                    JobStatus.QUEUED.value,
                    preferences.preferred_name,
                    _json_or_none(preferences.location_data),
                    _json_or_none(preferences.weather_data),
                    _json_or_none(preferences.calendar_events),
                    preferences.encouragement_preference,
                    list(preferences.stock_symbols),
                    preferences.include_weather,
                    preferences.include_news,
                    preferences.include_sports,
                    preferences.include_stocks,
                    preferences.include_calendar,
                    preferences.include_quotes,
                    preferences.desired_voice,
                    preferences.desired_length,
                    now,
                )

                job_id = row["job_id"]
                inserted = row["inserted"]
                await self._insert_log(
                    conn,
                    job_id=job_id,
                    event="job_created",
                    level=LogLevel.INFO,
                    message="Job created for user" if inserted else "Job reset for user",
                    meta={**log_meta, "reset": not inserted},
                    now=now,
                )

        return job_id, inserted

    async def get_job(self, job_id: UUID) -> Job:
        """Get a job by ID."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM jobs WHERE job_id = $1", job_id)

        if not row:
            raise JobNotFoundError(str(job_id))

        return self._row_to_job(row)

    async def get_job_for_user_date(self, user_id: str, local_date: date) -> Job:
        """Get the job for a user's local calendar day."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM jobs WHERE user_id = $1 AND local_date = $2",
                user_id,
                local_date,
            )

        if not row:
            raise JobNotFoundError(
                f"{local_date}", f"No job found for local date {local_date}"
            )

        return self._row_to_job(row)

    async def list_jobs_in_range(
        self,
        start_date: date,
        end_date: date,
        user_id: Optional[str] = None,
        limit: int = 500,
    ) -> list[JobSummary]:
        """List job summaries whose local date falls in [start_date, end_date]."""
        query = """
            SELECT job_id, local_date, scheduled_at, status FROM jobs
            WHERE local_date >= $1 AND local_date <= $2
        """
        params: list[Any] = [start_date, end_date]
        param_idx = 3

        if user_id:
            query += f" AND user_id = ${param_idx}"
            params.append(user_id)
            param_idx += 1

        query += f" ORDER BY local_date ASC, scheduled_at ASC LIMIT ${param_idx}"
        params.append(limit)

        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [
            JobSummary(
                job_id=row["job_id"],
                local_date=row["local_date"],
                scheduled_at=row["scheduled_at"],
                status=JobStatus(row["status"]),
            )
            for row in rows
        ]

    async def lease_jobs_atomically(
        self,
        target_status: JobStatus,
        leased_status: JobStatus,
        worker_id: str,
        now: datetime,
        lease_until: datetime,
        horizon_end: datetime,
        limit: int,
        max_attempts: int,
    ) -> list[Job]:
        """
        Atomically claim a batch of jobs for one worker.

        Uses FOR UPDATE SKIP LOCKED so rows being claimed by a concurrent
        transaction are left out of this result instead of blocking on them.
        Rows still in ``leased_status`` whose lease has expired are re-claimed.
        Jobs already leased ``max_attempts`` times are not offered again.
        Returns jobs ordered by ascending scheduled_at.
        """
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                UPDATE jobs
                SET worker_id = $1,
                    lease_until = $2,
                    status = $3,
                    attempt_count = attempt_count + 1,
                    updated_at = $4
                WHERE job_id IN (
                    SELECT job_id FROM jobs
                    WHERE (
                            (status = $5 AND (lease_until IS NULL OR lease_until <= $4))
                         OR (status = $3 AND lease_until <= $4)
                          )
                      AND scheduled_at <= $6
                      AND attempt_count < $8
                    ORDER BY scheduled_at ASC
                    LIMIT $7
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING *
                """,
                worker_id,
                lease_until,
                leased_status.value,
                now,
                target_status.value,
                horizon_end,
                limit,
                max_attempts,
            )

        jobs = [self._row_to_job(row) for row in rows]
        jobs.sort(key=lambda job: job.scheduled_at)
        return jobs

    async def complete_step(
        self,
        job_id: UUID,
        worker_id: str,
        new_status: JobStatus,
        now: datetime,
        script: Optional[str] = None,
        audio_path: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> Job:
        """
        Advance or terminate a leased job and release its lease.

        The row is locked first and the caller's lease checked under that
        lock. Raises LeaseLostError without writing anything if the job is
        missing, held by someone else, or its lease has run out. Reaching
        ``script_ready`` resets ``attempt_count`` for the audio stage.
        """
        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT * FROM jobs WHERE job_id = $1 FOR UPDATE", job_id
                )
                if (
                    not row
                    or row["worker_id"] != worker_id
                    or row["lease_until"] is None
                    or row["lease_until"] <= now
                ):
                    raise LeaseLostError(str(job_id), worker_id)

                validate_transition(row["status"], new_status, TransitionActor.COMPLETE)

                failed = new_status in FAILED_STATUSES
                updated = await conn.fetchrow(
                    """
                    UPDATE jobs
                    SET status = $2,
                        script = COALESCE($3, script),
                        script_ready_at = CASE WHEN $2 = 'script_ready' THEN $6 ELSE script_ready_at END,
                        audio_path = COALESCE($4, audio_path),
                        audio_ready_at = CASE WHEN $2 = 'ready' THEN $6 ELSE audio_ready_at END,
                        failure_reason = $5,
                        attempt_count = CASE WHEN $2 = 'script_ready' THEN 0 ELSE attempt_count END,
                        worker_id = NULL,
                        lease_until = NULL,
                        updated_at = $6
                    WHERE job_id = $1
                    RETURNING *
                    """,
                    job_id,
                    new_status.value,
                    script,
                    audio_path,
                    failure_reason if failed else None,
                    now,
                )

                if new_status == JobStatus.SCRIPT_READY:
                    message = "Script generation completed"
                elif new_status == JobStatus.READY:
                    message = "Audio generation completed"
                else:
                    message = f"Job step failed: {failure_reason or 'Unknown error'}"

                await self._insert_log(
                    conn,
                    job_id=job_id,
                    event="job_step_completed",
                    level=LogLevel.ERROR if failed else LogLevel.INFO,
                    message=message,
                    meta={
                        "worker_id": worker_id,
                        "user_id_hash": hash_user_id(row["user_id"]),
                        "previous_status": row["status"],
                        "new_status": new_status.value,
                        "has_script": script is not None,
                        "has_audio_path": audio_path is not None,
                        "attempt_count": row["attempt_count"],
                    },
                    now=now,
                )

        return self._row_to_job(updated)

    async def mark_downloaded(self, job_id: UUID, user_id: str, now: datetime) -> Job:
        """Record the client's confirmation that it fetched the audio."""
        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT * FROM jobs WHERE job_id = $1 AND user_id = $2 FOR UPDATE",
                    job_id,
                    user_id,
                )
                if not row:
                    raise JobNotFoundError(str(job_id))
                if row["status"] != JobStatus.READY.value:
                    raise InvalidTransitionError(
                        row["status"],
                        "downloaded",
                        f"Job {job_id} is {row['status']}, audio is not ready",
                    )

                updated = await conn.fetchrow(
                    """
                    UPDATE jobs
                    SET downloaded_at = COALESCE(downloaded_at, $2),
                        updated_at = $2
                    WHERE job_id = $1
                    RETURNING *
                    """,
                    job_id,
                    now,
                )
                if row["downloaded_at"] is None:
                    await self._insert_log(
                        conn,
                        job_id=job_id,
                        event="audio_downloaded",
                        level=LogLevel.INFO,
                        message="Client confirmed audio download",
                        meta={"local_date": row["local_date"].isoformat()},
                        now=now,
                    )

        return self._row_to_job(updated)

    async def reap_missed_jobs(
        self, now: datetime, limit: int, failure_reason: str
    ) -> list[Job]:
        """
        Move unfinished jobs whose window has closed to ``failed_missed``.

        Jobs with a live lease are left to their worker. Selection skips rows
        locked by concurrent lease or completion transactions.
        """
        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch(
                    """
                    WITH missed AS (
                        SELECT job_id, status AS previous_status FROM jobs
                        WHERE status = ANY($1::text[])
                          AND window_end < $2
                          AND (lease_until IS NULL OR lease_until <= $2)
                        ORDER BY window_end ASC
                        LIMIT $3
                        FOR UPDATE SKIP LOCKED
                    )
                    UPDATE jobs AS j
                    SET status = $4,
                        failure_reason = $5,
                        worker_id = NULL,
                        lease_until = NULL,
                        updated_at = $2
                    FROM missed
                    WHERE j.job_id = missed.job_id
                    RETURNING j.*, missed.previous_status
                    """,
                    [status.value for status in REAPABLE_STATUSES],
                    now,
                    limit,
                    JobStatus.FAILED_MISSED.value,
                    failure_reason,
                )

                for row in rows:
                    validate_transition(
                        row["previous_status"], JobStatus.FAILED_MISSED, TransitionActor.REAP
                    )

                if rows:
                    await conn.executemany(
                        """
                        INSERT INTO logs (id, job_id, event, level, message, meta, created_at)
                        VALUES ($1, $2, $3, $4, $5, $6, $7)
                        """,
                        [
                            (
                                uuid4(),
                                row["job_id"],
                                "job_missed",
                                LogLevel.ERROR.value,
                                f"Job step failed: {failure_reason}",
                                json.dumps(
                                    {
                                        "user_id_hash": hash_user_id(row["user_id"]),
                                        "previous_status": row["previous_status"],
                                        "new_status": JobStatus.FAILED_MISSED.value,
                                        "window_end": row["window_end"].isoformat(),
                                    }
                                ),
                                now,
                            )
                            for row in rows
                        ],
                    )

        return [self._row_to_job(row) for row in rows]

    async def list_logs(self, job_id: UUID, limit: int = 100) -> list[LogEntry]:
        """List log entries for a job, newest first."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM logs
                WHERE job_id = $1
                ORDER BY created_at DESC
                LIMIT $2
                """,
                job_id,
                limit,
            )

        return [
            LogEntry(
                id=row["id"],
                job_id=row["job_id"],
                event=row["event"],
                level=LogLevel(row["level"]),
                message=row["message"],
                meta=_decode_json(row["meta"]),
                error_details=_decode_json(row["error_details"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def _insert_log(
        self,
        conn: asyncpg.Connection,
        *,
        job_id: UUID,
        event: str,
        level: LogLevel,
        now: datetime,
        message: Optional[str] = None,
        meta: Optional[dict[str, Any]] = None,
        error_details: Optional[dict[str, Any]] = None,
    ) -> UUID:
        log_id = uuid4()
        await conn.execute(
            """
            INSERT INTO logs (id, job_id, event, level, message, meta, error_details, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
            log_id,
            job_id,
            event,
            LogLevel(level).value,
            message,
            _json_or_none(meta),
            _json_or_none(error_details),
            now,
        )
        return log_id

    def _row_to_job(self, row: asyncpg.Record) -> Job:
        """Convert a database row to a Job model."""
        preferences = PreferencesSnapshot(
            preferred_name=row["preferred_name"],
            location_data=_decode_json(row["location_data"]),
            weather_data=_decode_json(row["weather_data"]),
            calendar_events=_decode_json(row["calendar_events"]),
            encouragement_preference=row["encouragement_preference"],
            stock_symbols=list(row["stock_symbols"] or []),
            include_weather=row["include_weather"],
            include_news=row["include_news"],
            include_sports=row["include_sports"],
            include_stocks=row["include_stocks"],
            include_calendar=row["include_calendar"],
            include_quotes=row["include_quotes"],
            desired_voice=row["desired_voice"],
            desired_length=row["desired_length"],
        )
        return Job(
            job_id=row["job_id"],
            user_id=row["user_id"],
            local_date=row["local_date"],
            scheduled_at=row["scheduled_at"],
            window_start=row["window_start"],
            window_end=row["window_end"],
            status=JobStatus(row["status"]),
            preferences=preferences,
            attempt_count=row["attempt_count"],
            worker_id=row["worker_id"],
            lease_until=row["lease_until"],
            script=row["script"],
            script_ready_at=row["script_ready_at"],
            audio_path=row["audio_path"],
            audio_ready_at=row["audio_ready_at"],
            downloaded_at=row["downloaded_at"],
            failure_reason=row["failure_reason"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
