"""Dispatcher - picks the next eligible job and runs its handler."""

import asyncio
from typing import Any, Optional

import structlog

from jobengine.jobs.context import JobContext
from jobengine.jobs.errors import (
    HandlerError,
    InvalidTransitionError,
    PersistenceConflictError,
)
from jobengine.jobs.lifecycle import JobLifecycle
from jobengine.jobs.models import Job
from jobengine.jobs.registry import JobHandler, JobRegistry, default_registry
from jobengine.jobs.types import JobStatus

logger = structlog.get_logger(__name__)


class Dispatcher:
    """Runs one job at a time: claim, execute, complete or fail and retry."""

    def __init__(
        self,
        lifecycle: JobLifecycle,
        registry: JobRegistry = default_registry,
        handler_timeout_s: Optional[float] = None,
        worker_id: Optional[str] = None,
    ):
        self._lifecycle = lifecycle
        self._store = lifecycle.store
        self._registry = registry
        self._handler_timeout_s = handler_timeout_s
        self._worker_id = worker_id

    async def dispatch_next(self) -> Optional[Job]:
        """Run the highest-priority, oldest eligible job.

        Returns the job in the state it was left in (completed, pending for
        retry, failed or cancelled), or None when nothing is eligible.
        Handler errors never propagate out of this call.
        """
        candidates = await self._store.query_eligible(self._lifecycle.now(), limit=1)
        if not candidates:
            return None

        candidate = candidates[0]
        log = logger.bind(job_id=str(candidate.id), job_type=candidate.type.value)

        try:
            job = await self._lifecycle.start(candidate.id)
        except (InvalidTransitionError, PersistenceConflictError) as e:
            # Cancelled or claimed between the query and the start
            log.info("job_claim_lost", error=str(e))
            return None

        return await self._execute(job, log)

    async def _execute(self, job: Job, log) -> Job:
        try:
            handler = self._registry.get_handler(job.type)
        except KeyError:
            error = f"No handler registered for job type: {job.type.value}"
            log.error("job_no_handler", error=error)
            return await self._fail(job, error, log, should_retry=False)

        log.info("job_executing", attempt=job.retry_count + 1)
        ctx = JobContext(job=job, lifecycle=self._lifecycle, worker_id=self._worker_id)

        try:
            result = await self._invoke(handler, job, ctx)
        except Exception as e:
            log.error("job_handler_failed", error=str(e) or type(e).__name__)
            return await self._fail(
                job, HandlerError(job.id, job.retry_count + 1, e), log, should_retry=True
            )

        output = result if result is None or isinstance(result, dict) else {"result": result}
        try:
            job = await self._lifecycle.complete(job.id, output)
        except InvalidTransitionError:
            return await self._resolve_cancelled(job, log, outcome="succeeded")

        log.info("job_succeeded")
        return job

    async def _invoke(self, handler: JobHandler, job: Job, ctx: JobContext) -> Any:
        if self._handler_timeout_s is None:
            return await handler(job, ctx)
        return await asyncio.wait_for(handler(job, ctx), timeout=self._handler_timeout_s)

    async def _fail(self, job: Job, error, log, should_retry: bool) -> Job:
        try:
            failed = await self._lifecycle.fail(job.id, error)
        except InvalidTransitionError:
            current = await self._resolve_cancelled(job, log, outcome="failed")
            cause = error.cause if isinstance(error, HandlerError) else error
            return await self._lifecycle.add_error(
                current.id, cause, {"attempt": job.retry_count + 1, "after_cancel": True}
            )

        if should_retry and self._lifecycle.retry_policy.can_retry(failed):
            return await self._lifecycle.retry(failed.id)

        if should_retry:
            # Retries exhausted: the failed status is the alerting signal
            log.warning(
                "job_retries_exhausted",
                retry_count=failed.retry_count,
                max_retries=failed.max_retries,
                error=failed.error_log[-1].message if failed.error_log else None,
            )
        return failed

    async def _resolve_cancelled(self, job: Job, log, outcome: str) -> Job:
        """A transition out of processing was refused; accept only cancellation."""
        current = await self._lifecycle.get(job.id)
        if current.status != JobStatus.CANCELLED:
            raise InvalidTransitionError(
                job.id, current.status, JobStatus.PROCESSING, "job_left_processing"
            )
        log.info("job_cancelled_during_run", handler_outcome=outcome)
        return current
