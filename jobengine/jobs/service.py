"""Job service - the operations exposed to requesters.

Enqueue, query, cancel, stats and the live event feed. Requesters never
mutate jobs directly; everything past enqueue goes through the lifecycle.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Optional, Set
from uuid import UUID

import structlog

from jobengine.events.bus import EventBus
from jobengine.events.schemas import JobEvent
from jobengine.jobs.lifecycle import JobLifecycle
from jobengine.jobs.models import Job, JobStats
from jobengine.jobs.payloads import validate_input
from jobengine.jobs.types import JobPriority, JobStatus, JobType

logger = structlog.get_logger(__name__)


class JobService:
    """Requester-facing API over the store, lifecycle and event bus."""

    def __init__(
        self,
        lifecycle: JobLifecycle,
        bus: EventBus,
        default_max_retries: int = 3,
        stats_window_days: int = 7,
    ):
        self._lifecycle = lifecycle
        self._store = lifecycle.store
        self._bus = bus
        self._default_max_retries = default_max_retries
        self._stats_window_days = stats_window_days

    async def enqueue(
        self,
        owner_id: str,
        job_type: JobType,
        input: Optional[dict[str, Any]] = None,
        priority: JobPriority = JobPriority.NORMAL,
        max_retries: Optional[int] = None,
        scheduled_at: Optional[datetime] = None,
        total_items: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> UUID:
        """Create a pending job and return its id.

        Raises:
            InvalidJobInputError: input does not match the schema for job_type
            ValueError: negative max_retries or total_items, or a naive
                scheduled_at
        """
        job_type = JobType(job_type)
        if max_retries is None:
            max_retries = self._default_max_retries
        if max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {max_retries}")
        if total_items is not None and total_items < 0:
            raise ValueError(f"total_items must be non-negative, got {total_items}")
        if scheduled_at is not None:
            if scheduled_at.tzinfo is None:
                raise ValueError("scheduled_at must be timezone-aware")
            scheduled_at = scheduled_at.astimezone(timezone.utc)

        now = self._lifecycle.now()
        job = Job(
            owner_id=owner_id,
            type=job_type,
            priority=JobPriority(priority),
            input=validate_input(job_type, input),
            max_retries=max_retries,
            scheduled_at=scheduled_at,
            total_items=total_items,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        job_id = await self._store.create(job)
        logger.info(
            "job_enqueued",
            job_id=str(job_id),
            owner_id=owner_id,
            job_type=job_type.value,
            priority=job.priority.value,
            max_retries=max_retries,
        )
        return job_id

    async def get(self, job_id: UUID) -> Job:
        """Fetch a job including its error log. Raises JobNotFoundError."""
        return await self._store.load(job_id)

    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        job_type: Optional[JobType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """Jobs newest first with the total count for pagination."""
        limit = max(1, min(limit, 100))
        offset = max(0, offset)
        return await self._store.list_jobs(
            owner_id=owner_id,
            status=status,
            job_type=job_type,
            limit=limit,
            offset=offset,
        )

    async def list_active(self, owner_id: Optional[str] = None) -> list[Job]:
        return await self._store.list_active(owner_id)

    async def cancel(self, job_id: UUID) -> Job:
        """Request cancellation.

        Idempotent for an already-cancelled job. Raises InvalidTransitionError
        for completed or failed jobs and JobNotFoundError for unknown ids.
        """
        return await self._lifecycle.cancel(job_id, actor="user")

    async def stats(
        self, owner_id: Optional[str] = None, days: Optional[int] = None
    ) -> list[JobStats]:
        """Per (type, status) aggregates over the trailing window."""
        window = days if days is not None else self._stats_window_days
        if window < 1:
            raise ValueError(f"days must be at least 1, got {window}")
        since = self._lifecycle.now() - timedelta(days=window)
        return await self._store.stats(since, owner_id)

    def subscribe(
        self,
        subscriber_id: str,
        owner_id: Optional[str] = None,
        topics: Optional[Set[str]] = None,
        last_event_id: Optional[str] = None,
    ) -> AsyncIterator[JobEvent]:
        """Live lifecycle events for one owner, or all owners when owner_id is None."""
        return self._bus.subscribe(
            subscriber_id,
            owner_id=owner_id,
            topics=topics,
            last_event_id=last_event_id,
        )
