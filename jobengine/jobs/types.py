"""Job system type definitions."""

from enum import Enum


class JobType(str, Enum):
    """Job types handled by the engine."""

    IMPORT = "import"
    STATUS_UPDATE = "status_update"
    VERIFICATION = "verification"
    EXPORT = "export"
    CLEANUP = "cleanup"


class JobStatus(str, Enum):
    """Job lifecycle statuses."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal.

        FAILED counts as terminal even though the retry controller may
        move it back to PENDING.
        """
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.PROCESSING)


class JobPriority(str, Enum):
    """Scheduling priority, ordered LOW < NORMAL < HIGH < URGENT."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    JobPriority.LOW: 0,
    JobPriority.NORMAL: 1,
    JobPriority.HIGH: 2,
    JobPriority.URGENT: 3,
}
