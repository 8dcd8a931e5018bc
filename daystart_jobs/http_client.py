"""HTTP client for the DayStart jobs service."""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

import aiohttp

from daystart_jobs.errors import AuthTokenError, LeaseLostError, RemoteHttpError
from daystart_jobs.models import PreferencesSnapshot


def _iso(value: Union[date, datetime, str]) -> str:
    return value if isinstance(value, str) else value.isoformat()


class DayStartJobsHttpClient:
    """HTTP client for calling the DayStart jobs service."""

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 5.0,
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Base URL of the jobs service (e.g., "https://daystart-jobs.internal")
            auth_token: Optional auth token for X-DayStart-Jobs-Token header
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["X-DayStart-Jobs-Token"] = self.auth_token
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.request(
                    method, url, json=json, params=params, headers=self._headers()
                ) as resp:
                    response_body = await resp.text()

                    if resp.status == 401:
                        raise AuthTokenError(f"Failed to {action}: invalid or missing token")

                    if resp.status == 404:
                        raise RemoteHttpError(
                            status_code=404,
                            message="Job not found",
                            response_body=response_body,
                        )

                    if resp.status >= 400:
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"Failed to {action}: {response_body}",
                            response_body=response_body,
                        )

                    return await resp.json()

            except aiohttp.ClientError as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e)}",
                ) from e

    async def create_or_reset_job(
        self,
        *,
        user_id: str,
        local_date: Union[date, str],
        scheduled_at: Union[datetime, str],
        window_start: Union[datetime, str],
        window_end: Union[datetime, str],
        preferences: Union[PreferencesSnapshot, Dict[str, Any]],
    ) -> UUID:
        """
        Create or reset the job for a user's local day via HTTP API.

        Returns:
            Job ID (UUID)

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        if isinstance(preferences, PreferencesSnapshot):
            preferences = preferences.model_dump(mode="json")

        request_body = {
            "user_id": user_id,
            "local_date": _iso(local_date),
            "scheduled_at": _iso(scheduled_at),
            "window_start": _iso(window_start),
            "window_end": _iso(window_end),
            "preferences": preferences,
        }

        response_data = await self._request("POST", "/jobs", "create job", json=request_body)
        return UUID(response_data["job_id"])

    async def get_job_status(
        self,
        *,
        job_id: Optional[UUID] = None,
        user_id: Optional[str] = None,
        local_date: Optional[Union[date, str]] = None,
    ) -> Dict[str, Any]:
        """
        Get the client-facing status of a job, by ID or by user and local date.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        params = {}
        if job_id:
            params["job_id"] = str(job_id)
        if user_id:
            params["user_id"] = user_id
        if local_date:
            params["local_date"] = _iso(local_date)

        return await self._request("GET", "/jobs/status", "get job status", params=params)

    async def get_job(self, job_id: UUID) -> Dict[str, Any]:
        """
        Get full job details by ID.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        return await self._request("GET", f"/jobs/{job_id}", "get job")

    async def list_jobs_in_range(
        self,
        *,
        start_date: Union[date, str],
        end_date: Union[date, str],
        user_id: Optional[str] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        List job summaries whose local date falls in the inclusive range.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        params = {
            "start_date": _iso(start_date),
            "end_date": _iso(end_date),
            "limit": limit,
        }
        if user_id:
            params["user_id"] = user_id

        return await self._request("GET", "/jobs", "list jobs", params=params)

    async def lease_jobs(
        self,
        target_status: str,
        worker_id: str,
        lease_duration_minutes: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Lease a batch of jobs in ``target_status`` for ``worker_id``.

        Raises:
            AuthTokenError: If the worker token is rejected
            RemoteHttpError: If the HTTP request fails
        """
        request_body = {
            "target_status": getattr(target_status, "value", target_status),
            "worker_id": worker_id,
        }
        if lease_duration_minutes is not None:
            request_body["lease_duration_minutes"] = lease_duration_minutes
        if limit is not None:
            request_body["limit"] = limit

        return await self._request("POST", "/jobs/lease", "lease jobs", json=request_body)

    async def complete_step(
        self,
        job_id: UUID,
        worker_id: str,
        new_status: str,
        script: Optional[str] = None,
        audio_path: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """
        Report the outcome of a leased processing step.

        Raises:
            LeaseLostError: If the worker no longer holds a live lease
            RemoteHttpError: If the HTTP request fails
        """
        request_body = {
            "worker_id": worker_id,
            "new_status": getattr(new_status, "value", new_status),
        }
        if script is not None:
            request_body["script"] = script
        if audio_path is not None:
            request_body["audio_path"] = audio_path
        if failure_reason is not None:
            request_body["failure_reason"] = failure_reason

        try:
            response_data = await self._request(
                "POST", f"/jobs/{job_id}/complete", "complete job step", json=request_body
            )
        except RemoteHttpError as e:
            if e.status_code == 409:
                raise LeaseLostError(str(job_id), worker_id) from e
            raise
        return bool(response_data["success"])

    async def mark_downloaded(self, job_id: UUID, user_id: str) -> Dict[str, Any]:
        """
        Confirm the client downloaded the ready audio.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        return await self._request(
            "POST",
            f"/jobs/{job_id}/downloaded",
            "mark job downloaded",
            json={"user_id": user_id},
        )

    async def list_job_logs(self, job_id: UUID, limit: int = 100) -> List[Dict[str, Any]]:
        """
        List structured log entries for a job.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        return await self._request(
            "GET", f"/jobs/{job_id}/logs", "list job logs", params={"limit": limit}
        )
