"""In-process job store for tests and single-process deployments."""

import copy
import itertools
from collections import defaultdict
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

import structlog

from jobengine.jobs.errors import JobNotFoundError, PersistenceConflictError
from jobengine.jobs.models import Job, JobStats, utcnow
from jobengine.jobs.types import JobStatus, JobType
from jobengine.repositories.base import JobStore

logger = structlog.get_logger(__name__)


class InMemoryJobStore(JobStore):
    """
    Dict-backed job store.

    Jobs are deep-copied on the way in and out so callers never share
    state with the stored record; a save from a stale copy is rejected
    exactly like the database version check.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._jobs: dict[UUID, Job] = {}
        self._sequence: dict[UUID, int] = {}
        self._counter = itertools.count()
        self._clock = clock

    async def create(self, job: Job) -> UUID:
        if job.id in self._jobs:
            raise ValueError(f"Job {job.id} already exists")
        self._jobs[job.id] = copy.deepcopy(job)
        self._sequence[job.id] = next(self._counter)
        logger.debug("job_record_created", job_id=str(job.id))
        return job.id

    async def load(self, job_id: UUID) -> Job:
        stored = self._jobs.get(job_id)
        if stored is None:
            raise JobNotFoundError(job_id)
        return copy.deepcopy(stored)

    async def save(self, job: Job) -> Job:
        stored = self._jobs.get(job.id)
        if stored is None:
            raise JobNotFoundError(job.id)
        if stored.version != job.version:
            raise PersistenceConflictError(job.id, job.version)

        job.version += 1
        job.updated_at = self._clock()
        self._jobs[job.id] = copy.deepcopy(job)
        return job

    def _fifo_key(self, job: Job) -> tuple[datetime, int]:
        return (job.created_at, self._sequence[job.id])

    async def query_eligible(self, now: datetime, limit: int = 1) -> list[Job]:
        eligible = [
            job
            for job in self._jobs.values()
            if job.status == JobStatus.PENDING
            and (job.scheduled_at is None or job.scheduled_at <= now)
        ]
        eligible.sort(key=self._fifo_key)
        eligible.sort(key=lambda j: j.priority.rank, reverse=True)
        return [copy.deepcopy(job) for job in eligible[:limit]]

    def _newest_first(self, jobs: list[Job]) -> list[Job]:
        return sorted(jobs, key=self._fifo_key, reverse=True)

    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        job_type: Optional[JobType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        matches = [
            job
            for job in self._jobs.values()
            if (owner_id is None or job.owner_id == owner_id)
            and (status is None or job.status == status)
            and (job_type is None or job.type == job_type)
        ]
        page = self._newest_first(matches)[offset : offset + limit]
        return [copy.deepcopy(job) for job in page], len(matches)

    async def list_active(self, owner_id: Optional[str] = None) -> list[Job]:
        active = [
            job
            for job in self._jobs.values()
            if job.status.is_active
            and (owner_id is None or job.owner_id == owner_id)
        ]
        return [copy.deepcopy(job) for job in self._newest_first(active)]

    async def stats(
        self, since: datetime, owner_id: Optional[str] = None
    ) -> list[JobStats]:
        buckets: dict[tuple[JobType, JobStatus], list[Job]] = defaultdict(list)
        for job in self._jobs.values():
            if job.created_at < since:
                continue
            if owner_id is not None and job.owner_id != owner_id:
                continue
            buckets[(job.type, job.status)].append(job)

        rows = []
        for (job_type, status), jobs in sorted(
            buckets.items(), key=lambda item: (item[0][0].value, item[0][1].value)
        ):
            rows.append(
                JobStats(
                    type=job_type,
                    status=status,
                    count=len(jobs),
                    avg_processed=sum(j.processed_items for j in jobs) / len(jobs),
                    total_success=sum(j.success_items for j in jobs),
                    total_failed=sum(j.failed_items for j in jobs),
                )
            )
        return rows
