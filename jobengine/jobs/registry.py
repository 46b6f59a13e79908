"""Maps each job type to the coroutine that processes it."""

from typing import TYPE_CHECKING, Any, Callable, Coroutine, Optional

import structlog

from jobengine.jobs.models import Job
from jobengine.jobs.types import JobType

if TYPE_CHECKING:
    from jobengine.jobs.context import JobContext

logger = structlog.get_logger(__name__)

# async def handler(job: Job, ctx: JobContext) -> dict | None
# A non-dict return value is stored as {"result": value}.
JobHandler = Callable[
    [Job, "JobContext"], Coroutine[Any, Any, Optional[dict[str, Any]]]
]


class JobRegistry:
    """One handler per job type; a later registration replaces the earlier one."""

    def __init__(self):
        self._handlers: dict[JobType, JobHandler] = {}

    def register(self, job_type: JobType, handler: JobHandler) -> None:
        job_type = JobType(job_type)
        previous = self._handlers.get(job_type)
        if previous is not None and previous is not handler:
            logger.warning(
                "job_handler_replaced",
                job_type=job_type.value,
                previous=getattr(previous, "__qualname__", repr(previous)),
                handler=getattr(handler, "__qualname__", repr(handler)),
            )
        self._handlers[job_type] = handler

    def has_handler(self, job_type: JobType) -> bool:
        return JobType(job_type) in self._handlers

    def get_handler(self, job_type: JobType) -> JobHandler:
        """Raises KeyError when nothing is registered for job_type."""
        job_type = JobType(job_type)
        found = self._handlers.get(job_type)
        if found is None:
            raise KeyError(f"No handler registered for job type: {job_type.value}")
        return found

    def handler(self, job_type: JobType) -> Callable[[JobHandler], JobHandler]:
        """Decorator form of register()."""

        def decorator(fn: JobHandler) -> JobHandler:
            self.register(job_type, fn)
            return fn

        return decorator

    def registered_types(self) -> list[JobType]:
        return sorted(self._handlers, key=lambda jt: jt.value)


# Handler modules register here via @default_registry.handler(...)
default_registry = JobRegistry()
