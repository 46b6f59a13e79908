"""Job lifecycle - applies state transitions to stored jobs.

Every mutation is a single load → validate → mutate → save step run under
a per-job lock. A stale save is re-loaded and re-applied rather than
overwritten. Exactly one event is published per saved transition, in the
order the transitions were applied.
"""

import asyncio
import traceback
import weakref
from datetime import datetime
from typing import Any, Callable, Optional, Union
from uuid import UUID

import structlog

from jobengine.events.bus import EventBus
from jobengine.events.schemas import JobEventTopic, job_event
from jobengine.jobs.errors import (
    HandlerError,
    InvalidTransitionError,
    PersistenceConflictError,
)
from jobengine.jobs.models import Job, utcnow
from jobengine.jobs.progress import apply_progress, percent_complete
from jobengine.jobs.retry import RetryPolicy, default_retry_policy
from jobengine.jobs.transitions import (
    ActorType,
    JobStatusTransition,
    transition_validator,
)
from jobengine.jobs.types import JobStatus
from jobengine.repositories.base import JobStore

logger = structlog.get_logger(__name__)

# Returns True when the job changed and must be saved
Mutation = Callable[[Job], bool]


class JobLifecycle:
    """Owns every status change and counter update for stored jobs."""

    def __init__(
        self,
        store: JobStore,
        bus: EventBus,
        retry_policy: RetryPolicy = default_retry_policy,
        clock: Callable[[], datetime] = utcnow,
        conflict_retries: int = 3,
        validator: JobStatusTransition = transition_validator,
    ):
        self._store = store
        self._bus = bus
        self._retry_policy = retry_policy
        self._clock = clock
        self._conflict_retries = max(1, conflict_retries)
        self._validator = validator
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def store(self) -> JobStore:
        return self._store

    def now(self) -> datetime:
        return self._clock()

    def _lock_for(self, job_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[job_id] = lock
        return lock

    async def get(self, job_id: UUID) -> Job:
        return await self._store.load(job_id)

    async def _mutate(
        self,
        job_id: UUID,
        mutate: Mutation,
        topic: Optional[JobEventTopic] = None,
    ) -> Job:
        lock = self._lock_for(job_id)
        async with lock:
            attempt = 0
            while True:
                attempt += 1
                job = await self._store.load(job_id)
                if not mutate(job):
                    return job
                try:
                    job = await self._store.save(job)
                    break
                except PersistenceConflictError:
                    if attempt >= self._conflict_retries:
                        logger.error(
                            "job_save_conflict_exhausted",
                            job_id=str(job_id),
                            attempts=attempt,
                        )
                        raise
                    logger.warning(
                        "job_save_conflict_retry",
                        job_id=str(job_id),
                        attempt=attempt,
                    )

            if topic is not None:
                await self._emit(topic, job)
        return job

    async def _emit(self, topic: JobEventTopic, job: Job) -> None:
        """Publish an event; a failing bus never undoes the saved transition."""
        try:
            await self._bus.publish(job_event(topic, job, timestamp=self._clock()))
        except Exception as e:
            logger.warning(
                "job_event_publish_failed",
                job_id=str(job.id),
                topic=topic,
                error=str(e),
            )

    async def start(self, job_id: UUID) -> Job:
        """pending → processing."""

        def mutate(job: Job) -> bool:
            self._validator.require(job, JobStatus.PROCESSING)
            job.status = JobStatus.PROCESSING
            job.started_at = self._clock()
            job.completed_at = None
            job.estimated_completion = None
            return True

        job = await self._mutate(job_id, mutate, "job:started")
        logger.info(
            "job_started",
            job_id=str(job_id),
            job_type=job.type.value,
            attempt=job.retry_count + 1,
        )
        return job

    async def update_progress(
        self,
        job_id: UUID,
        processed: int,
        success_delta: int = 0,
        failed_delta: int = 0,
    ) -> Job:
        """Record handler progress. Only valid while the job is processing."""

        def mutate(job: Job) -> bool:
            if job.status != JobStatus.PROCESSING:
                raise InvalidTransitionError(
                    job.id, job.status, JobStatus.PROCESSING, "progress_requires_processing"
                )
            apply_progress(job, processed, success_delta, failed_delta, now=self._clock())
            return True

        return await self._mutate(job_id, mutate, "job:progress")

    async def set_total(self, job_id: UUID, total_items: int) -> Job:
        """Set the item count once the handler knows it."""
        if total_items < 0:
            raise ValueError(f"total_items must be non-negative, got {total_items}")

        def mutate(job: Job) -> bool:
            if job.status not in (JobStatus.PENDING, JobStatus.PROCESSING):
                raise InvalidTransitionError(
                    job.id, job.status, JobStatus.PROCESSING, "total_requires_active_job"
                )
            job.total_items = total_items
            job.processed_items = min(job.processed_items, total_items)
            job.progress = percent_complete(job.processed_items, total_items)
            return True

        return await self._mutate(job_id, mutate)

    async def add_error(
        self,
        job_id: UUID,
        error: Union[BaseException, str],
        context: Optional[dict[str, Any]] = None,
    ) -> Job:
        """Append an item-level error without changing status."""
        message = str(error) if not isinstance(error, str) else error

        def mutate(job: Job) -> bool:
            entry_context = {"item": job.processed_items}
            entry_context.update(context or {})
            job.record_error(message, entry_context, now=self._clock())
            return True

        return await self._mutate(job_id, mutate)

    async def complete(
        self, job_id: UUID, output: Optional[dict[str, Any]] = None
    ) -> Job:
        """processing → completed."""

        def mutate(job: Job) -> bool:
            self._validator.require(job, JobStatus.COMPLETED)
            job.status = JobStatus.COMPLETED
            job.completed_at = self._clock()
            job.progress = 100
            if output is not None:
                job.output = output
            return True

        job = await self._mutate(job_id, mutate, "job:completed")
        logger.info("job_completed", job_id=str(job_id), job_type=job.type.value)
        return job

    async def fail(
        self,
        job_id: UUID,
        error: Union[BaseException, str],
        context: Optional[dict[str, Any]] = None,
    ) -> Job:
        """processing → failed, recording the error with its attempt number."""
        if isinstance(error, HandlerError):
            cause: Union[BaseException, str] = error.cause
            error_type: Optional[str] = error.error_type
        else:
            cause = error
            error_type = None if isinstance(error, str) else type(error).__name__
        message = cause if isinstance(cause, str) else (str(cause) or error_type)

        def mutate(job: Job) -> bool:
            self._validator.require(job, JobStatus.FAILED)
            entry_context: dict[str, Any] = {"attempt": job.retry_count + 1}
            if isinstance(cause, BaseException):
                entry_context["error_type"] = error_type
                if cause.__traceback__ is not None:
                    entry_context["traceback"] = "".join(
                        traceback.format_exception(type(cause), cause, cause.__traceback__)
                    )
            entry_context.update(context or {})

            job.status = JobStatus.FAILED
            job.completed_at = self._clock()
            job.record_error(message, entry_context, now=self._clock())
            return True

        job = await self._mutate(job_id, mutate, "job:failed")
        logger.warning(
            "job_failed",
            job_id=str(job_id),
            job_type=job.type.value,
            attempt=job.retry_count + 1,
            error=message,
        )
        return job

    async def cancel(self, job_id: UUID, actor: ActorType = "user") -> Job:
        """pending/processing → cancelled. A no-op when already cancelled."""
        already_cancelled = False

        def mutate(job: Job) -> bool:
            nonlocal already_cancelled
            already_cancelled = job.status == JobStatus.CANCELLED
            if already_cancelled:
                return False
            self._validator.require(job, JobStatus.CANCELLED, actor)
            job.status = JobStatus.CANCELLED
            job.completed_at = self._clock()
            job.estimated_completion = None
            return True

        job = await self._mutate(job_id, mutate, "job:cancelled")
        if already_cancelled:
            logger.debug("job_cancel_noop", job_id=str(job_id), actor=actor)
        else:
            logger.info("job_cancelled", job_id=str(job_id), actor=actor)
        return job

    async def retry(self, job_id: UUID) -> Job:
        """failed → pending with linear backoff."""

        def mutate(job: Job) -> bool:
            self._validator.require(job, JobStatus.PENDING)
            self._retry_policy.apply_retry(job, self._clock())
            return True

        job = await self._mutate(job_id, mutate, "job:retry")
        logger.info(
            "job_retry_scheduled",
            job_id=str(job_id),
            retry_count=job.retry_count,
            max_retries=job.max_retries,
            scheduled_at=job.scheduled_at.isoformat() if job.scheduled_at else None,
        )
        return job
