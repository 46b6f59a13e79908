"""Persistence boundary for job records."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from jobengine.jobs.models import Job, JobStats
from jobengine.jobs.types import JobStatus, JobType


class JobStore(ABC):
    """
    Abstract job record store.

    Implementations persist and query only; every status rule lives in
    the lifecycle. save() is optimistic: it fails with
    PersistenceConflictError when the stored version no longer matches
    job.version.
    """

    @abstractmethod
    async def create(self, job: Job) -> UUID:
        """Persist a new job and return its id."""
        ...

    @abstractmethod
    async def load(self, job_id: UUID) -> Job:
        """Load a job. Raises JobNotFoundError if it does not exist."""
        ...

    @abstractmethod
    async def save(self, job: Job) -> Job:
        """
        Write back a loaded job.

        Bumps job.version and job.updated_at on success.

        Raises:
            JobNotFoundError: job no longer exists
            PersistenceConflictError: job was saved by someone else since load
        """
        ...

    @abstractmethod
    async def query_eligible(self, now: datetime, limit: int = 1) -> list[Job]:
        """
        Pending jobs whose scheduled_at is unset or <= now.

        Ordered by priority descending, then created_at ascending.
        """
        ...

    @abstractmethod
    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        job_type: Optional[JobType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """List jobs newest first. Returns (page, total matching)."""
        ...

    @abstractmethod
    async def list_active(self, owner_id: Optional[str] = None) -> list[Job]:
        """Pending and processing jobs, newest first."""
        ...

    @abstractmethod
    async def stats(
        self, since: datetime, owner_id: Optional[str] = None
    ) -> list[JobStats]:
        """Aggregate jobs created at or after since by (type, status)."""
        ...
