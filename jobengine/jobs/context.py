"""Handle passed to job handlers for reporting back to the engine."""

from dataclasses import dataclass
from typing import Any, Optional, Union

from jobengine.jobs.lifecycle import JobLifecycle
from jobengine.jobs.models import Job
from jobengine.jobs.types import JobStatus


@dataclass
class JobContext:
    """Progress, error and cancellation callbacks for one running job.

    ``job`` is refreshed after every update so handlers always see the
    latest counters.
    """

    job: Job
    lifecycle: JobLifecycle
    worker_id: Optional[str] = None

    async def update_progress(
        self, processed: int, success_delta: int = 0, failed_delta: int = 0
    ) -> Job:
        self.job = await self.lifecycle.update_progress(
            self.job.id, processed, success_delta, failed_delta
        )
        return self.job

    async def set_total(self, total_items: int) -> Job:
        self.job = await self.lifecycle.set_total(self.job.id, total_items)
        return self.job

    async def add_error(
        self,
        error: Union[BaseException, str],
        context: Optional[dict[str, Any]] = None,
    ) -> Job:
        self.job = await self.lifecycle.add_error(self.job.id, error, context)
        return self.job

    async def is_cancelled(self) -> bool:
        """Cancellation is cooperative: long handlers should poll this."""
        current = await self.lifecycle.get(self.job.id)
        return current.status == JobStatus.CANCELLED
