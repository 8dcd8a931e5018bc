"""Exception types for the DayStart jobs library."""


class DayStartJobsError(Exception):
    """Base exception for all DayStart jobs errors."""

    pass


class JobValidationError(DayStartJobsError):
    """Raised when job input is rejected before anything is written."""

    pass


class JobNotFoundError(DayStartJobsError):
    """Raised when a job is not found."""

    def __init__(self, job_id: str, message: str = None):
        self.job_id = job_id
        if message is None:
            message = f"Job {job_id} not found"
        super().__init__(message)


class LeaseLostError(DayStartJobsError):
    """Raised when a worker acts on a job it no longer holds a live lease on."""

    def __init__(self, job_id: str, worker_id: str, message: str = None):
        self.job_id = job_id
        self.worker_id = worker_id
        if message is None:
            message = f"Job {job_id} not found or lease expired for worker {worker_id}"
        super().__init__(message)


class InvalidTransitionError(DayStartJobsError):
    """Raised when a status change is not part of the job state machine."""

    def __init__(self, current: str, target: str, message: str = None):
        self.current = current
        self.target = target
        if message is None:
            message = f"Invalid status transition: {current} -> {target}"
        super().__init__(message)


class AuthTokenError(DayStartJobsError):
    """Raised when authentication token is missing or invalid."""

    pass


class RemoteHttpError(DayStartJobsError):
    """Raised when an HTTP request to a remote DayStart jobs service fails."""

    def __init__(self, status_code: int, message: str, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")
