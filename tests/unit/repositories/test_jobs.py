"""Tests for the PostgreSQL job repository."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from jobengine.jobs.errors import JobNotFoundError, PersistenceConflictError
from jobengine.jobs.models import Job
from jobengine.jobs.types import JobPriority, JobStatus, JobType
from jobengine.repositories.jobs import JobRepository

NOW = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def job_row(**overrides):
    """A jobs row as asyncpg returns it, jsonb columns as text."""
    row = {
        "id": uuid4(),
        "owner_id": "user-1",
        "type": "import",
        "status": "pending",
        "priority": "normal",
        "input": '{"items": []}',
        "output": None,
        "progress": 0,
        "total_items": None,
        "processed_items": 0,
        "success_items": 0,
        "failed_items": 0,
        "error_log": "[]",
        "retry_count": 0,
        "max_retries": 3,
        "scheduled_at": None,
        "created_at": NOW,
        "updated_at": NOW,
        "started_at": None,
        "completed_at": None,
        "estimated_completion": None,
        "metadata": "{}",
        "version": 0,
    }
    row.update(overrides)
    return row


@pytest.fixture
def mock_pool():
    pool = MagicMock()
    conn = AsyncMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    return pool, conn


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_inserts_all_columns(self, mock_pool):
        pool, conn = mock_pool
        job = Job(
            owner_id="user-1",
            type=JobType.EXPORT,
            priority=JobPriority.HIGH,
            input={"format": "json"},
            metadata={"source": "api"},
        )
        conn.fetchrow.return_value = {"id": job.id}

        repo = JobRepository(pool)
        job_id = await repo.create(job)

        assert job_id == job.id
        args = conn.fetchrow.call_args[0]
        assert "INSERT INTO jobs" in args[0]
        assert args[1] == job.id
        assert args[3] == "export"
        assert args[4] == "pending"
        assert args[5] == "high"
        assert json.loads(args[6]) == {"format": "json"}
        assert args[7] is None
        assert json.loads(args[13]) == []
        assert json.loads(args[20]) == {"source": "api"}


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_decodes_row(self, mock_pool):
        pool, conn = mock_pool
        row = job_row(
            status="failed",
            priority="urgent",
            output='{"rows": 3}',
            error_log=json.dumps(
                [
                    {
                        "timestamp": NOW.isoformat(),
                        "message": "boom",
                        "context": {"attempt": 1},
                    }
                ]
            ),
            version=4,
        )
        conn.fetchrow.return_value = row

        job = await JobRepository(pool).load(row["id"])

        assert job.id == row["id"]
        assert job.status == JobStatus.FAILED
        assert job.priority == JobPriority.URGENT
        assert job.input == {"items": []}
        assert job.output == {"rows": 3}
        assert job.error_log[0].message == "boom"
        assert job.error_log[0].timestamp == NOW
        assert job.error_log[0].context == {"attempt": 1}
        assert job.version == 4

    @pytest.mark.asyncio
    async def test_load_accepts_decoded_jsonb(self, mock_pool):
        pool, conn = mock_pool
        row = job_row(input={"items": [{"a": 1}]}, metadata={"k": "v"}, error_log=[])
        conn.fetchrow.return_value = row

        job = await JobRepository(pool).load(row["id"])
        assert job.input == {"items": [{"a": 1}]}
        assert job.metadata == {"k": "v"}

    @pytest.mark.asyncio
    async def test_load_missing_raises(self, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None

        with pytest.raises(JobNotFoundError):
            await JobRepository(pool).load(uuid4())


class TestSave:
    @pytest.mark.asyncio
    async def test_save_checks_version(self, mock_pool):
        pool, conn = mock_pool
        later = NOW + timedelta(seconds=5)
        conn.fetchrow.return_value = {"version": 3, "updated_at": later}
        job = Job(owner_id="user-1", type=JobType.IMPORT, version=2)
        job.status = JobStatus.PROCESSING

        saved = await JobRepository(pool).save(job)

        args = conn.fetchrow.call_args[0]
        assert "WHERE id = $1 AND version = $2" in args[0]
        assert "version = version + 1" in args[0]
        assert args[1] == job.id
        assert args[2] == 2
        assert args[3] == "processing"
        assert saved.version == 3
        assert saved.updated_at == later

    @pytest.mark.asyncio
    async def test_save_stale_version_conflicts(self, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None
        conn.fetchval.return_value = 1
        job = Job(owner_id="user-1", type=JobType.IMPORT, version=1)

        with pytest.raises(PersistenceConflictError) as exc_info:
            await JobRepository(pool).save(job)
        assert exc_info.value.expected_version == 1

    @pytest.mark.asyncio
    async def test_save_missing_row_not_found(self, mock_pool):
        pool, conn = mock_pool
        conn.fetchrow.return_value = None
        conn.fetchval.return_value = None

        with pytest.raises(JobNotFoundError):
            await JobRepository(pool).save(Job(owner_id="user-1", type=JobType.IMPORT))


class TestQueries:
    @pytest.mark.asyncio
    async def test_query_eligible_orders_by_priority_then_age(self, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = [job_row(priority="urgent")]

        jobs = await JobRepository(pool).query_eligible(NOW, limit=5)

        query, now, limit = conn.fetch.call_args[0]
        assert "status = 'pending'" in query
        assert "scheduled_at IS NULL OR scheduled_at <= $1" in query
        assert "ORDER BY priority DESC, created_at ASC" in query
        assert now == NOW
        assert limit == 5
        assert jobs[0].priority == JobPriority.URGENT

    @pytest.mark.asyncio
    async def test_list_jobs_no_filters(self, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = [job_row(), job_row()]
        conn.fetchrow.return_value = {"total": 12}

        jobs, total = await JobRepository(pool).list_jobs(limit=2, offset=4)

        assert len(jobs) == 2
        assert total == 12
        query = conn.fetch.call_args[0][0]
        assert "WHERE" not in query
        assert "ORDER BY created_at DESC" in query
        assert conn.fetch.call_args[0][1:] == (2, 4)
        assert conn.fetchrow.call_args[0][1:] == ()

    @pytest.mark.asyncio
    async def test_list_jobs_with_filters(self, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = []
        conn.fetchrow.return_value = {"total": 0}

        await JobRepository(pool).list_jobs(
            owner_id="user-1", status=JobStatus.FAILED, job_type=JobType.EXPORT
        )

        query = conn.fetch.call_args[0][0]
        assert "owner_id = $1" in query
        assert "status = $2" in query
        assert "type = $3" in query
        assert "LIMIT $4 OFFSET $5" in query
        assert conn.fetch.call_args[0][1:] == ("user-1", "failed", "export", 50, 0)
        assert conn.fetchrow.call_args[0][1:] == ("user-1", "failed", "export")

    @pytest.mark.asyncio
    async def test_list_jobs_empty_owner_still_filters(self, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = []
        conn.fetchrow.return_value = {"total": 0}

        await JobRepository(pool).list_jobs(owner_id="")

        query = conn.fetch.call_args[0][0]
        assert "WHERE owner_id = $1" in query
        assert conn.fetch.call_args[0][1:] == ("", 50, 0)
        assert conn.fetchrow.call_args[0][1:] == ("",)

    @pytest.mark.asyncio
    async def test_list_active_scoped_to_owner(self, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = [job_row(status="processing")]

        jobs = await JobRepository(pool).list_active("user-1")

        query, owner = conn.fetch.call_args[0]
        assert "status IN ('pending', 'processing')" in query
        assert owner == "user-1"
        assert jobs[0].status == JobStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_stats_maps_rows(self, mock_pool):
        pool, conn = mock_pool
        conn.fetch.return_value = [
            {
                "type": "import",
                "status": "completed",
                "count": 2,
                "avg_processed": 15.0,
                "total_success": 29,
                "total_failed": 1,
            }
        ]
        since = NOW - timedelta(days=7)

        stats = await JobRepository(pool).stats(since, owner_id=None)

        query, since_arg, owner_arg = conn.fetch.call_args[0]
        assert "GROUP BY type, status" in query
        assert since_arg == since
        assert owner_arg is None
        assert stats[0].type == JobType.IMPORT
        assert stats[0].status == JobStatus.COMPLETED
        assert stats[0].count == 2
        assert stats[0].avg_processed == 15.0
