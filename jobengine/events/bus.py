"""Lifecycle event bus.

The lifecycle publishes one JobEvent per saved transition. Consumers
either subscribe (an async iterator backed by a queue, filtered by owner
and topic) or register an inline listener. The bus is handed to the
lifecycle explicitly; nothing here is a module-level instance.
"""

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Set, Union

import structlog

from jobengine.config import Settings
from jobengine.events.schemas import JOB_TOPICS, JobEvent

logger = structlog.get_logger(__name__)

# def listener(event) or async def listener(event)
EventListener = Callable[[JobEvent], Union[None, Awaitable[None]]]


class EventBus(ABC):
    """Where the lifecycle sends job events."""

    @abstractmethod
    def subscribe(
        self,
        subscriber_id: str,
        owner_id: Optional[str] = None,
        topics: Optional[Set[str]] = None,
        last_event_id: Optional[str] = None,
    ) -> AsyncIterator[JobEvent]:
        """
        Stream events until the consumer stops iterating.

        Declared as a plain method so the return type reads as an
        iterator; implementations are async generators.

        Args:
            subscriber_id: Key used to drop the subscription on close
            owner_id: Restrict to one owner's jobs (None = every owner)
            topics: "job:*" topics and/or "job" for all of them (None = all)
            last_event_id: Replay buffered events newer than this id first
        """
        ...

    @abstractmethod
    async def publish(self, event: JobEvent) -> int:
        """Deliver event; returns how many subscribers and listeners got it."""
        ...

    @abstractmethod
    async def unsubscribe(self, subscriber_id: str) -> None:
        ...

    @abstractmethod
    def subscriber_count(self) -> int:
        ...

    @abstractmethod
    def add_listener(self, listener: EventListener) -> None:
        """Call listener inline for every published event."""
        ...


def _expand_topics(topics: Optional[Set[str]]) -> Set[str]:
    """Resolve the "job" shorthand (or no filter at all) to every job topic."""
    if not topics:
        return set(JOB_TOPICS)

    expanded: Set[str] = set()
    for topic in topics:
        if topic == "job":
            expanded |= JOB_TOPICS
        else:
            expanded.add(topic)
    return expanded


async def _call_listener(listener: EventListener, event: JobEvent) -> None:
    result: Any = listener(event)
    if inspect.isawaitable(result):
        await result


@dataclass
class _Subscription:
    owner_id: Optional[str]
    topics: Set[str]
    queue: "asyncio.Queue[JobEvent]" = field(default_factory=asyncio.Queue)

    def wants(self, event: JobEvent) -> bool:
        if self.owner_id is not None and event.owner_id != self.owner_id:
            return False
        return event.topic in self.topics


class InMemoryEventBus(EventBus):
    """
    Single-process bus.

    Each subscriber gets its own unbounded queue. Published events are
    also kept in a bounded, time-limited buffer so a reconnecting
    consumer can pass its last seen id and catch up. Listeners run
    inline after queue delivery; one raising listener is logged and the
    rest still run.
    """

    def __init__(self, buffer_size: int = 1000, buffer_ttl_seconds: int = 300):
        self._subscriptions: dict[str, _Subscription] = {}
        self._listeners: list[EventListener] = []
        self._recent: deque[tuple[float, JobEvent]] = deque(maxlen=buffer_size)
        self._replay_ttl = buffer_ttl_seconds
        self._sequence = 0
        self._lock = asyncio.Lock()

    def _next_id(self) -> str:
        self._sequence += 1
        return f"evt-{self._sequence}"

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    async def subscribe(
        self,
        subscriber_id: str,
        owner_id: Optional[str] = None,
        topics: Optional[Set[str]] = None,
        last_event_id: Optional[str] = None,
    ) -> AsyncIterator[JobEvent]:
        subscription = _Subscription(owner_id=owner_id, topics=_expand_topics(topics))
        async with self._lock:
            self._subscriptions[subscriber_id] = subscription

        logger.info(
            "event_subscriber_added",
            subscriber_id=subscriber_id,
            owner_id=owner_id or "*",
            topics=sorted(subscription.topics),
            subscribers=len(self._subscriptions),
        )

        try:
            if last_event_id:
                for event in self._missed_since(last_event_id, subscription):
                    yield event

            while True:
                yield await subscription.queue.get()
        finally:
            await self.unsubscribe(subscriber_id)

    def _missed_since(
        self, last_event_id: str, subscription: _Subscription
    ) -> list[JobEvent]:
        """Buffered events after last_event_id that the subscription wants.

        Nothing is replayed when last_event_id has aged out of the buffer.
        """
        oldest_allowed = time.monotonic() - self._replay_ttl
        missed: list[JobEvent] = []
        seen_marker = False
        for published_at, event in list(self._recent):
            if published_at < oldest_allowed:
                continue
            if not seen_marker:
                seen_marker = event.id == last_event_id
                continue
            if subscription.wants(event):
                missed.append(event)
        return missed

    async def publish(self, event: JobEvent) -> int:
        if not event.id:
            event.id = self._next_id()

        async with self._lock:
            self._recent.append((time.monotonic(), event))

        delivered = 0
        for subscriber_id, subscription in list(self._subscriptions.items()):
            if not subscription.wants(event):
                continue
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "event_publish_error",
                    subscriber_id=subscriber_id,
                    error=str(e),
                )

        for listener in list(self._listeners):
            try:
                await _call_listener(listener, event)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "event_listener_error",
                    listener=getattr(listener, "__name__", repr(listener)),
                    topic=event.topic,
                    job_id=str(event.job_id),
                    error=str(e),
                )

        if delivered:
            logger.debug(
                "event_published",
                event_id=event.id,
                topic=event.topic,
                delivered=delivered,
            )
        return delivered

    async def unsubscribe(self, subscriber_id: str) -> None:
        async with self._lock:
            removed = self._subscriptions.pop(subscriber_id, None)

        if removed is not None:
            logger.info(
                "event_subscriber_removed",
                subscriber_id=subscriber_id,
                subscribers=len(self._subscriptions),
            )

    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def buffer_size(self) -> int:
        """Events currently held for replay."""
        return len(self._recent)


class NullEventBus(EventBus):
    """Drops every event. For deployments where nothing consumes them."""

    async def subscribe(
        self,
        subscriber_id: str,
        owner_id: Optional[str] = None,
        topics: Optional[Set[str]] = None,
        last_event_id: Optional[str] = None,
    ) -> AsyncIterator[JobEvent]:
        for event in ():
            yield event

    async def publish(self, event: JobEvent) -> int:
        return 0

    async def unsubscribe(self, subscriber_id: str) -> None:
        return None

    def subscriber_count(self) -> int:
        return 0

    def add_listener(self, listener: EventListener) -> None:
        return None


def create_event_bus(settings: Settings) -> EventBus:
    """Bus selected by EVENT_BUS_MODE: "memory" (default) or "none"."""
    if settings.event_bus_mode == "none":
        logger.info("event_bus_initialized", mode="none")
        return NullEventBus()

    logger.info(
        "event_bus_initialized",
        mode="memory",
        buffer_size=settings.event_bus_buffer_size,
    )
    return InMemoryEventBus(buffer_size=settings.event_bus_buffer_size)
