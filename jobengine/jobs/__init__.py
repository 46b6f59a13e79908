"""Job system package."""

from jobengine.jobs.types import JobPriority, JobStatus, JobType
from jobengine.jobs.models import ErrorLogEntry, Job, JobStats
from jobengine.jobs.errors import (
    HandlerError,
    InvalidJobInputError,
    InvalidTransitionError,
    JobError,
    JobNotFoundError,
    PersistenceConflictError,
)
from jobengine.jobs.registry import JobRegistry, default_registry

__all__ = [
    "JobType",
    "JobStatus",
    "JobPriority",
    "Job",
    "JobStats",
    "ErrorLogEntry",
    "JobError",
    "JobNotFoundError",
    "InvalidTransitionError",
    "HandlerError",
    "PersistenceConflictError",
    "InvalidJobInputError",
    "JobRegistry",
    "default_registry",
]
