"""Job record stores."""

from jobengine.repositories.base import JobStore
from jobengine.repositories.jobs import JobRepository
from jobengine.repositories.memory import InMemoryJobStore

__all__ = ["JobStore", "JobRepository", "InMemoryJobStore"]
