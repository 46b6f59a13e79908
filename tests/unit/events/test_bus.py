"""Unit tests for the in-process event bus."""

import asyncio
import json

import pytest

from jobengine.config import Settings
from jobengine.events.bus import InMemoryEventBus, NullEventBus, create_event_bus
from jobengine.events.schemas import job_event
from jobengine.jobs.models import Job
from jobengine.jobs.types import JobType


def make_event(topic="job:started", owner_id="user-1"):
    return job_event(topic, Job(owner_id=owner_id, type=JobType.IMPORT))


async def open_stream(bus, subscriber_id, **kwargs):
    """Subscribe and wait until the bus has registered the subscriber."""
    before = bus.subscriber_count()
    stream = bus.subscribe(subscriber_id, **kwargs)
    pending = asyncio.ensure_future(stream.__anext__())
    while bus.subscriber_count() == before:
        await asyncio.sleep(0)
    return stream, pending


class TestInMemoryEventBus:
    @pytest.mark.asyncio
    async def test_assigns_monotonic_ids(self):
        bus = InMemoryEventBus()
        first, second = make_event(), make_event()
        await bus.publish(first)
        await bus.publish(second)
        assert (first.id, second.id) == ("evt-1", "evt-2")
        assert bus.buffer_size() == 2

    @pytest.mark.asyncio
    async def test_owner_filter(self):
        bus = InMemoryEventBus()
        own_stream, own_next = await open_stream(bus, "own", owner_id="user-1")
        all_stream, all_next = await open_stream(bus, "all")

        count = await bus.publish(make_event(owner_id="user-2"))
        assert count == 1
        await bus.publish(make_event(owner_id="user-1"))

        own = await asyncio.wait_for(own_next, timeout=1)
        everything = await asyncio.wait_for(all_next, timeout=1)
        assert own.owner_id == "user-1"
        assert everything.owner_id == "user-2"

        await own_stream.aclose()
        await all_stream.aclose()
        assert bus.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_topic_filter(self):
        bus = InMemoryEventBus()
        stream, pending = await open_stream(bus, "failures", topics={"job:failed"})

        await bus.publish(make_event("job:started"))
        await bus.publish(make_event("job:failed"))

        event = await asyncio.wait_for(pending, timeout=1)
        assert event.topic == "job:failed"
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_replay_after_last_event_id(self):
        bus = InMemoryEventBus()
        published = [make_event(), make_event(owner_id="user-2"), make_event("job:completed")]
        for event in published:
            await bus.publish(event)

        stream = bus.subscribe("reconnect", owner_id="user-1", last_event_id="evt-1")
        replayed = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert replayed.id == "evt-3"
        assert replayed.topic == "job:completed"
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_listener_failure_is_isolated(self):
        bus = InMemoryEventBus()
        received = []

        def broken(event):
            raise RuntimeError("listener crashed")

        async def recorder(event):
            received.append(event.topic)

        bus.add_listener(broken)
        bus.add_listener(recorder)

        count = await bus.publish(make_event("job:progress"))
        assert count == 1
        assert received == ["job:progress"]

    @pytest.mark.asyncio
    async def test_job_category_expands_to_all_topics(self):
        bus = InMemoryEventBus()
        stream, pending = await open_stream(bus, "all-jobs", topics={"job"})
        await bus.publish(make_event("job:retry"))
        event = await asyncio.wait_for(pending, timeout=1)
        assert event.topic == "job:retry"
        await stream.aclose()


class TestNullEventBus:
    @pytest.mark.asyncio
    async def test_discards_everything(self):
        bus = NullEventBus()
        assert await bus.publish(make_event()) == 0
        assert [e async for e in bus.subscribe("x")] == []
        assert bus.subscriber_count() == 0


class TestEventSchema:
    def test_to_sse_format(self):
        event = make_event("job:cancelled")
        event.id = "evt-9"
        sse = event.to_sse()

        lines = sse.split("\n")
        assert lines[0] == "id: evt-9"
        assert lines[1] == "event: job:cancelled"
        payload = json.loads(lines[2][len("data: "):])
        assert payload["job_id"] == str(event.job_id)
        assert payload["job"]["owner_id"] == "user-1"
        assert sse.endswith("\n\n")

    def test_snapshot_is_taken_at_emission(self):
        job = Job(owner_id="user-1", type=JobType.EXPORT)
        event = job_event("job:started", job)
        job.progress = 50
        assert event.job["progress"] == 0


class TestCreateEventBus:
    def test_memory_mode(self):
        bus = create_event_bus(Settings(event_bus_mode="memory", event_bus_buffer_size=10))
        assert isinstance(bus, InMemoryEventBus)

    def test_none_mode(self):
        assert isinstance(create_event_bus(Settings(event_bus_mode="none")), NullEventBus)
