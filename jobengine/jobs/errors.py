"""Job engine exceptions."""

from typing import Any, Optional
from uuid import UUID

from jobengine.jobs.types import JobStatus, JobType


class JobError(Exception):
    """Base class for job engine errors."""


class JobNotFoundError(JobError):
    """Raised when a job id does not exist in the store."""

    def __init__(self, job_id: UUID):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class InvalidTransitionError(JobError):
    """Raised when a requested status change is not allowed."""

    def __init__(
        self,
        job_id: Optional[UUID],
        current: JobStatus,
        requested: JobStatus,
        reason: Optional[str] = None,
    ):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        self.reason = reason
        message = (
            f"Job {job_id} cannot transition from "
            f"{current.value} to {requested.value}"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class HandlerError(JobError):
    """A job handler raised or timed out.

    Never escapes the dispatcher; it is recorded in the job's error log.
    """

    def __init__(self, job_id: UUID, attempt: int, cause: BaseException):
        self.job_id = job_id
        self.attempt = attempt
        self.cause = cause
        super().__init__(str(cause) or type(cause).__name__)

    @property
    def error_type(self) -> str:
        return type(self.cause).__name__


class PersistenceConflictError(JobError):
    """The store rejected a save because the record changed since it was read."""

    def __init__(self, job_id: UUID, expected_version: int):
        self.job_id = job_id
        self.expected_version = expected_version
        super().__init__(
            f"Job {job_id} was modified concurrently (expected version {expected_version})"
        )


class InvalidJobInputError(JobError):
    """Job input does not match the schema for its type."""

    def __init__(self, job_type: JobType, errors: list[dict[str, Any]]):
        self.job_type = job_type
        self.errors = errors
        super().__init__(f"Invalid input for {job_type.value} job: {errors}")
