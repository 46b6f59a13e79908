"""Progress counters and completion-time estimation."""

import math
from datetime import datetime, timedelta
from typing import Optional

from jobengine.jobs.models import Job


def percent_complete(processed: int, total: int) -> int:
    """Completion percentage rounded half-up and clamped to [0, 100]."""
    if total <= 0:
        return 0
    pct = math.floor(processed / total * 100 + 0.5)
    return max(0, min(100, pct))


def estimate_completion(
    started_at: Optional[datetime],
    processed: int,
    total: Optional[int],
    now: datetime,
) -> Optional[datetime]:
    """Linear extrapolation of the finish time from the rate so far.

    Returns None when there is nothing to extrapolate from: unknown total,
    no start time, no elapsed time or no items processed yet.
    """
    if not total or started_at is None:
        return None

    elapsed = (now - started_at).total_seconds()
    if elapsed <= 0:
        return None

    rate = processed / elapsed
    if rate <= 0:
        return None

    remaining = max(0, total - processed)
    return now + timedelta(seconds=remaining / rate)


def apply_progress(
    job: Job,
    processed: int,
    success_delta: int = 0,
    failed_delta: int = 0,
    now: Optional[datetime] = None,
) -> Job:
    """Update counters, percentage and ETA in place.

    processed is an absolute count; the success/failed deltas are added to
    the running totals and may not be negative.
    """
    if processed < 0:
        raise ValueError(f"processed must be non-negative, got {processed}")
    if success_delta < 0 or failed_delta < 0:
        raise ValueError("success and failed deltas must be non-negative")

    if job.total_items is not None:
        processed = min(processed, job.total_items)

    job.processed_items = processed
    job.success_items += success_delta
    job.failed_items += failed_delta

    if job.total_items:
        job.progress = percent_complete(job.processed_items, job.total_items)
        if now is not None:
            job.estimated_completion = estimate_completion(
                job.started_at, job.processed_items, job.total_items, now
            )
    return job
