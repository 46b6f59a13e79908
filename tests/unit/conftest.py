"""Shared fixtures for engine unit tests."""

from datetime import datetime, timedelta, timezone

import pytest

from jobengine.events.bus import InMemoryEventBus
from jobengine.jobs.dispatcher import Dispatcher
from jobengine.jobs.lifecycle import JobLifecycle
from jobengine.jobs.registry import JobRegistry
from jobengine.jobs.service import JobService
from jobengine.repositories.memory import InMemoryJobStore


class FakeClock:
    """Frozen clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryJobStore(clock=clock)


@pytest.fixture
def bus():
    return InMemoryEventBus()


@pytest.fixture
def events(bus):
    """Every event published on the bus, in order."""
    received = []
    bus.add_listener(received.append)
    return received


@pytest.fixture
def lifecycle(store, bus, clock):
    return JobLifecycle(store, bus, clock=clock)


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def dispatcher(lifecycle, registry):
    return Dispatcher(lifecycle, registry=registry, worker_id="test-worker")


@pytest.fixture
def service(lifecycle, bus):
    return JobService(lifecycle, bus)
