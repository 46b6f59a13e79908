"""Retry decision and linear backoff for failed jobs."""

from datetime import datetime, timedelta

from jobengine.jobs.models import Job
from jobengine.jobs.types import JobStatus

# Each retry waits one more step than the last: 1 min, 2 min, 3 min...
RETRY_DELAY_STEP = timedelta(seconds=60)


class RetryPolicy:
    """Decides whether a failed job is re-queued and when it becomes eligible."""

    def __init__(self, delay_step: timedelta = RETRY_DELAY_STEP):
        self._delay_step = delay_step

    def can_retry(self, job: Job) -> bool:
        return job.status == JobStatus.FAILED and job.retry_count < job.max_retries

    def backoff(self, retry_count: int) -> timedelta:
        """Delay before attempt number retry_count + 1: retry_count * step."""
        return self._delay_step * retry_count

    def apply_retry(self, job: Job, now: datetime) -> Job:
        """Move a failed job back to pending with the next scheduled time."""
        job.retry_count += 1
        job.status = JobStatus.PENDING
        job.scheduled_at = now + self.backoff(job.retry_count)
        job.started_at = None
        job.completed_at = None
        job.estimated_completion = None
        return job


default_retry_policy = RetryPolicy()
