"""Progress and notification events, and the in-process event bus."""

import logging
import queue
import threading
from dataclasses import asdict, dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIBER_QUEUE_SIZE = 256


@dataclass(frozen=True)
class Event:
    """Base class for all events."""

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"type": self.event_type, "payload": asdict(self)}


# ── Discovery scan ────────────────────────────────────────────────────
@dataclass(frozen=True)
class ScanStarted(Event):
    pass


@dataclass(frozen=True)
class ScanProgress(Event):
    current: int
    total: int


@dataclass(frozen=True)
class ScanFinished(Event):
    unmapped: int = 0


# ── Library file scan ─────────────────────────────────────────────────
@dataclass(frozen=True)
class LibraryScanStarted(Event):
    pass


@dataclass(frozen=True)
class LibraryScanProgress(Event):
    scanned: int


@dataclass(frozen=True)
class LibraryScanFinished(Event):
    scanned: int
    matched: int
    updated: int


# ── Per-anime folder scan ─────────────────────────────────────────────
@dataclass(frozen=True)
class ScanFolderStarted(Event):
    anime_id: int
    title: str


@dataclass(frozen=True)
class ScanFolderFinished(Event):
    anime_id: int
    title: str
    found: int


# ── Rename ────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class RenameStarted(Event):
    anime_id: int
    title: str


@dataclass(frozen=True)
class RenameFinished(Event):
    anime_id: int
    title: str
    count: int
    failed: int = 0


@dataclass(frozen=True)
class Error(Event):
    message: str
    detail: Optional[str] = None


class Subscription:
    """A subscriber's bounded event queue."""

    def __init__(self, bus: "EventBus", maxsize: int):
        self._bus = bus
        self.queue: "queue.Queue[Event]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Next event, or None if none arrived within the timeout."""
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[Event]:
        """All currently queued events."""
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events

    def close(self):
        self._bus.unsubscribe(self)


class EventBus:
    """Fan-out publisher. Subscribers whose queue is full miss the event."""

    def __init__(self, subscriber_queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE):
        self._subscriber_queue_size = subscriber_queue_size
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self._subscriber_queue_size)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: Event) -> int:
        """Deliver to every subscriber with room; returns how many received it."""
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except queue.Full:
                subscription.dropped += 1
        logger.debug(f"Published {event.event_type} to {delivered}/{len(subscribers)} subscribers")
        return delivered


# Global instance
event_bus = EventBus()
