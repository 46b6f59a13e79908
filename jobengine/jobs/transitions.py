"""Job status transition validation.

Implements the job state machine with actor-based access control:
user requests may only cancel, every other edge belongs to the engine.
"""

from dataclasses import dataclass
from typing import Literal, Optional, Set

from jobengine.jobs.errors import InvalidTransitionError
from jobengine.jobs.models import Job
from jobengine.jobs.types import JobStatus

ActorType = Literal["engine", "user"]


@dataclass
class TransitionResult:
    """Result of a transition validation.

    Attributes:
        valid: Whether the transition is allowed
        error: Error reason if invalid
    """

    valid: bool
    error: Optional[str] = None


class JobStatusTransition:
    """Validates job status transitions.

    State machine rules:
    - pending → processing: engine (dispatch)
    - processing → completed: engine (handler success)
    - processing → failed: engine (handler error)
    - pending → cancelled: engine or user
    - processing → cancelled: engine or user
    - failed → pending: engine (retry, requires retry_count < max_retries)

    Completed and cancelled are terminal. Failed is terminal unless the
    retry controller re-queues it.
    """

    ALLOWED: dict[tuple[JobStatus, JobStatus], Set[ActorType]] = {
        (JobStatus.PENDING, JobStatus.PROCESSING): {"engine"},
        (JobStatus.PROCESSING, JobStatus.COMPLETED): {"engine"},
        (JobStatus.PROCESSING, JobStatus.FAILED): {"engine"},
        (JobStatus.PENDING, JobStatus.CANCELLED): {"engine", "user"},
        (JobStatus.PROCESSING, JobStatus.CANCELLED): {"engine", "user"},
        (JobStatus.FAILED, JobStatus.PENDING): {"engine"},
    }

    def validate(
        self,
        from_status: JobStatus,
        to_status: JobStatus,
        actor: ActorType = "engine",
    ) -> TransitionResult:
        """Validate a status transition.

        Args:
            from_status: Current status
            to_status: Target status
            actor: Who is performing the transition

        Returns:
            TransitionResult with valid=True if allowed, else error reason
        """
        from_status = JobStatus(from_status)
        to_status = JobStatus(to_status)
        key = (from_status, to_status)

        if key not in self.ALLOWED:
            return TransitionResult(
                valid=False,
                error=f"transition_{from_status.value}_to_{to_status.value}_not_allowed",
            )

        if actor not in self.ALLOWED[key]:
            return TransitionResult(
                valid=False,
                error=f"actor_{actor}_cannot_{from_status.value}_to_{to_status.value}",
            )

        return TransitionResult(valid=True)

    def require(
        self, job: Job, to_status: JobStatus, actor: ActorType = "engine"
    ) -> None:
        """Raise InvalidTransitionError unless job may move to to_status."""
        result = self.validate(job.status, to_status, actor)
        if not result.valid:
            raise InvalidTransitionError(job.id, job.status, to_status, result.error)

        if (job.status, to_status) == (JobStatus.FAILED, JobStatus.PENDING):
            if job.retry_count >= job.max_retries:
                raise InvalidTransitionError(
                    job.id, job.status, to_status, "retries_exhausted"
                )

    def get_allowed_targets(
        self, from_status: JobStatus, actor: ActorType = "engine"
    ) -> list[JobStatus]:
        """Get statuses this actor can move to from from_status."""
        from_status = JobStatus(from_status)
        targets = [
            tgt
            for (src, tgt), actors in self.ALLOWED.items()
            if src == from_status and actor in actors
        ]
        return sorted(targets, key=lambda s: s.value)


# Singleton instance for convenience
transition_validator = JobStatusTransition()
