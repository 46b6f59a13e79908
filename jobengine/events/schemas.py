"""Event schemas for job lifecycle notifications."""

from datetime import datetime, timezone
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from jobengine.jobs.models import Job

# Event topics
JobEventTopic = Literal[
    "job:started",
    "job:progress",
    "job:completed",
    "job:failed",
    "job:cancelled",
    "job:retry",
]

JOB_TOPICS = {
    "job:started",
    "job:progress",
    "job:completed",
    "job:failed",
    "job:cancelled",
    "job:retry",
}


class JobEvent(BaseModel):
    """
    Lifecycle notification carrying a full job snapshot.

    Designed for live-update consumption with:
    - Monotonic ID for Last-Event-ID reconnection
    - Topic-based routing
    - Owner scoping so users only see their own jobs
    """

    id: str = Field(default="", description="Monotonic event ID, assigned by the bus")
    topic: JobEventTopic = Field(..., description="Lifecycle topic (e.g., 'job:started')")
    job_id: UUID = Field(..., description="Job the event refers to")
    owner_id: str = Field(..., description="Owner scope for filtering")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Event timestamp (UTC)",
    )
    job: dict[str, Any] = Field(default_factory=dict, description="Job snapshot at emission")

    def to_sse(self) -> str:
        """
        Format as SSE message with id: line for reconnection.

        Returns:
            SSE-formatted string:
                id: <event_id>
                event: <topic>
                data: <json_payload>

        """
        return f"id: {self.id}\nevent: {self.topic}\ndata: {self.model_dump_json()}\n\n"


def job_event(
    topic: JobEventTopic, job: Job, timestamp: Optional[datetime] = None
) -> JobEvent:
    """Build an event for topic from the job's current state."""
    event = JobEvent(
        topic=topic,
        job_id=job.id,
        owner_id=job.owner_id,
        job=job.to_dict(),
    )
    if timestamp is not None:
        event.timestamp = timestamp
    return event
