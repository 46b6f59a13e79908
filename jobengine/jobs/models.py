"""Job system data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from jobengine.jobs.types import JobPriority, JobStatus, JobType

# Oldest entries are dropped first once the log grows past this
ERROR_LOG_LIMIT = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class ErrorLogEntry:
    """A single error recorded against a job."""

    message: str
    timestamp: datetime = field(default_factory=utcnow)
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ErrorLogEntry":
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            message=data.get("message", ""),
            timestamp=timestamp or utcnow(),
            context=data.get("context") or {},
        )


@dataclass
class Job:
    """A job in the queue."""

    owner_id: str
    type: JobType
    id: UUID = field(default_factory=uuid4)
    status: JobStatus = JobStatus.PENDING
    priority: JobPriority = JobPriority.NORMAL
    input: dict[str, Any] = field(default_factory=dict)
    output: Optional[dict[str, Any]] = None

    # Progress
    progress: int = 0
    total_items: Optional[int] = None
    processed_items: int = 0
    success_items: int = 0
    failed_items: int = 0
    error_log: list[ErrorLogEntry] = field(default_factory=list)

    # Retry handling
    retry_count: int = 0
    max_retries: int = 3
    scheduled_at: Optional[datetime] = None

    # Lifecycle timestamps
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_completion: Optional[datetime] = None

    metadata: dict[str, Any] = field(default_factory=dict)

    # Optimistic concurrency token, bumped by the store on every save
    version: int = 0

    def record_error(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> ErrorLogEntry:
        """Append an error entry, evicting the oldest beyond ERROR_LOG_LIMIT."""
        entry = ErrorLogEntry(
            message=message,
            timestamp=now or utcnow(),
            context=dict(context or {}),
        )
        self.error_log.append(entry)
        if len(self.error_log) > ERROR_LOG_LIMIT:
            del self.error_log[: len(self.error_log) - ERROR_LOG_LIMIT]
        return entry

    def to_dict(self) -> dict[str, Any]:
        """Serialize a snapshot for events and API responses."""
        return {
            "id": str(self.id),
            "owner_id": self.owner_id,
            "type": self.type.value,
            "status": self.status.value,
            "priority": self.priority.value,
            "input": self.input,
            "output": self.output,
            "progress": self.progress,
            "total_items": self.total_items,
            "processed_items": self.processed_items,
            "success_items": self.success_items,
            "failed_items": self.failed_items,
            "error_log": [entry.to_dict() for entry in self.error_log],
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "scheduled_at": _iso(self.scheduled_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "estimated_completion": _iso(self.estimated_completion),
            "metadata": self.metadata,
            "version": self.version,
        }


@dataclass
class JobStats:
    """Aggregate counts for one (type, status) bucket."""

    type: JobType
    status: JobStatus
    count: int
    avg_processed: float
    total_success: int
    total_failed: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "status": self.status.value,
            "count": self.count,
            "avg_processed": self.avg_processed,
            "total_success": self.total_success,
            "total_failed": self.total_failed,
        }
