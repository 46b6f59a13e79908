"""Event bus module for job lifecycle notifications."""

from jobengine.events.schemas import JOB_TOPICS, JobEvent, JobEventTopic, job_event
from jobengine.events.bus import (
    EventBus,
    InMemoryEventBus,
    NullEventBus,
    create_event_bus,
)

__all__ = [
    "JOB_TOPICS",
    "JobEvent",
    "JobEventTopic",
    "job_event",
    "EventBus",
    "InMemoryEventBus",
    "NullEventBus",
    "create_event_bus",
]
