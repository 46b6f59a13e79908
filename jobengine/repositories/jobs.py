"""PostgreSQL job store (asyncpg)."""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog

from jobengine.jobs.errors import JobNotFoundError, PersistenceConflictError
from jobengine.jobs.models import ErrorLogEntry, Job, JobStats
from jobengine.jobs.types import JobPriority, JobStatus, JobType
from jobengine.repositories.base import JobStore

logger = structlog.get_logger(__name__)


def _dump(value: Any) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def _load(value: Any) -> Any:
    """asyncpg hands jsonb back as text unless a codec is registered."""
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


class JobRepository(JobStore):
    """PostgreSQL job store over an asyncpg pool.

    Expects the schema from migrations/001_create_jobs.sql. The
    job_priority enum is declared low..urgent so ORDER BY priority DESC
    puts urgent first.
    """

    def __init__(self, pool):
        self._pool = pool

    async def create(self, job: Job) -> UUID:
        """Insert a new job row."""
        query = """
            INSERT INTO jobs (
                id, owner_id, type, status, priority, input, output,
                progress, total_items, processed_items, success_items,
                failed_items, error_log, scheduled_at, started_at,
                completed_at, estimated_completion, retry_count, max_retries,
                metadata, version, created_at, updated_at
            )
            VALUES (
                $1, $2, $3, $4, $5, $6::jsonb, $7::jsonb,
                $8, $9, $10, $11,
                $12, $13::jsonb, $14, $15,
                $16, $17, $18, $19,
                $20::jsonb, $21, $22, $23
            )
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                job.id,
                job.owner_id,
                job.type.value,
                job.status.value,
                job.priority.value,
                _dump(job.input),
                _dump(job.output),
                job.progress,
                job.total_items,
                job.processed_items,
                job.success_items,
                job.failed_items,
                _dump([entry.to_dict() for entry in job.error_log]),
                job.scheduled_at,
                job.started_at,
                job.completed_at,
                job.estimated_completion,
                job.retry_count,
                job.max_retries,
                _dump(job.metadata),
                job.version,
                job.created_at,
                job.updated_at,
            )
        logger.info(
            "job_created",
            job_id=str(row["id"]),
            job_type=job.type.value,
            priority=job.priority.value,
        )
        return row["id"]

    async def load(self, job_id: UUID) -> Job:
        """Get a job by ID."""
        query = "SELECT * FROM jobs WHERE id = $1"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, job_id)
        if not row:
            raise JobNotFoundError(job_id)
        return self._row_to_job(row)

    async def save(self, job: Job) -> Job:
        """Write the mutable columns if the row is still at job.version."""
        query = """
            UPDATE jobs SET
                status = $3,
                priority = $4,
                output = $5::jsonb,
                progress = $6,
                total_items = $7,
                processed_items = $8,
                success_items = $9,
                failed_items = $10,
                error_log = $11::jsonb,
                scheduled_at = $12,
                started_at = $13,
                completed_at = $14,
                estimated_completion = $15,
                retry_count = $16,
                max_retries = $17,
                metadata = $18::jsonb,
                version = version + 1,
                updated_at = now()
            WHERE id = $1 AND version = $2
            RETURNING version, updated_at
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                job.id,
                job.version,
                job.status.value,
                job.priority.value,
                _dump(job.output),
                job.progress,
                job.total_items,
                job.processed_items,
                job.success_items,
                job.failed_items,
                _dump([entry.to_dict() for entry in job.error_log]),
                job.scheduled_at,
                job.started_at,
                job.completed_at,
                job.estimated_completion,
                job.retry_count,
                job.max_retries,
                _dump(job.metadata),
            )
            if not row:
                exists = await conn.fetchval(
                    "SELECT 1 FROM jobs WHERE id = $1", job.id
                )
                if not exists:
                    raise JobNotFoundError(job.id)
                logger.warning(
                    "job_save_conflict", job_id=str(job.id), version=job.version
                )
                raise PersistenceConflictError(job.id, job.version)

        job.version = row["version"]
        job.updated_at = row["updated_at"]
        return job

    async def query_eligible(self, now: datetime, limit: int = 1) -> list[Job]:
        """Pending jobs due at now, highest priority then oldest first."""
        query = """
            SELECT * FROM jobs
            WHERE status = 'pending'
              AND (scheduled_at IS NULL OR scheduled_at <= $1)
            ORDER BY priority DESC, created_at ASC
            LIMIT $2
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, now, limit)
        return [self._row_to_job(row) for row in rows]

    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        job_type: Optional[JobType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """Newest-first page of jobs matching every given filter.

        Args:
            owner_id: Filter by requesting principal
            status: Filter by status
            job_type: Filter by job type
            limit: Max results
            offset: Pagination offset

        Returns:
            Tuple of (jobs list, total count)
        """
        conditions = []
        params: list[Any] = []
        param_idx = 1

        if owner_id is not None:
            conditions.append(f"owner_id = ${param_idx}")
            params.append(owner_id)
            param_idx += 1

        if status is not None:
            conditions.append(f"status = ${param_idx}")
            params.append(JobStatus(status).value)
            param_idx += 1

        if job_type is not None:
            conditions.append(f"type = ${param_idx}")
            params.append(JobType(job_type).value)
            param_idx += 1

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        query = f"""
            SELECT * FROM jobs
            {where_clause}
            ORDER BY created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
        """
        params.extend([limit, offset])

        count_query = f"""
            SELECT COUNT(*) as total FROM jobs
            {where_clause}
        """

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            # Same filters, without LIMIT/OFFSET
            count_row = await conn.fetchrow(count_query, *params[:-2])

        jobs = [self._row_to_job(row) for row in rows]
        total = count_row["total"] if count_row else 0

        return jobs, total

    async def list_active(self, owner_id: Optional[str] = None) -> list[Job]:
        """Pending and processing jobs, newest first."""
        query = """
            SELECT * FROM jobs
            WHERE status IN ('pending', 'processing')
              AND ($1::text IS NULL OR owner_id = $1)
            ORDER BY created_at DESC
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, owner_id)
        return [self._row_to_job(row) for row in rows]

    async def stats(
        self, since: datetime, owner_id: Optional[str] = None
    ) -> list[JobStats]:
        """Counts and item totals per (type, status) since a point in time."""
        query = """
            SELECT
                type,
                status,
                COUNT(*) AS count,
                COALESCE(AVG(processed_items), 0)::float8 AS avg_processed,
                COALESCE(SUM(success_items), 0)::bigint AS total_success,
                COALESCE(SUM(failed_items), 0)::bigint AS total_failed
            FROM jobs
            WHERE created_at >= $1
              AND ($2::text IS NULL OR owner_id = $2)
            GROUP BY type, status
            ORDER BY type, status
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, since, owner_id)
        return [
            JobStats(
                type=JobType(row["type"]),
                status=JobStatus(row["status"]),
                count=row["count"],
                avg_processed=float(row["avg_processed"]),
                total_success=row["total_success"],
                total_failed=row["total_failed"],
            )
            for row in rows
        ]

    def _row_to_job(self, row) -> Job:
        """Build a Job from a jobs row; jsonb columns may arrive as text."""
        return Job(
            id=row["id"],
            owner_id=row["owner_id"],
            type=JobType(row["type"]),
            status=JobStatus(row["status"]),
            priority=JobPriority(row["priority"]),
            input=_load(row["input"]) or {},
            output=_load(row["output"]),
            progress=row["progress"],
            total_items=row["total_items"],
            processed_items=row["processed_items"],
            success_items=row["success_items"],
            failed_items=row["failed_items"],
            error_log=[
                ErrorLogEntry.from_dict(entry)
                for entry in (_load(row["error_log"]) or [])
            ],
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
            scheduled_at=row["scheduled_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            estimated_completion=row["estimated_completion"],
            metadata=_load(row["metadata"]) or {},
            version=row["version"],
        )
