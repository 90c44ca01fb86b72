"""Unit tests for the event bus."""

from anime_admin.services.events import (
    EventBus,
    RenameFinished,
    ScanProgress,
    ScanStarted,
)


class TestEventBus:
    """Tests for fan-out and bounded subscriber queues."""

    def test_every_subscriber_receives_events(self) -> None:
        bus = EventBus()
        first = bus.subscribe()
        second = bus.subscribe()

        delivered = bus.publish(ScanStarted())

        assert delivered == 2
        assert first.get(timeout=0) == ScanStarted()
        assert second.get(timeout=0) == ScanStarted()

    def test_full_queue_drops_instead_of_blocking(self) -> None:
        bus = EventBus(subscriber_queue_size=1)
        slow = bus.subscribe()

        assert bus.publish(ScanProgress(current=1, total=2)) == 1
        assert bus.publish(ScanProgress(current=2, total=2)) == 0

        assert slow.dropped == 1
        assert slow.drain() == [ScanProgress(current=1, total=2)]

    def test_slow_subscriber_does_not_affect_others(self) -> None:
        bus = EventBus(subscriber_queue_size=1)
        slow = bus.subscribe()
        bus.publish(ScanStarted())
        fast = bus.subscribe()

        bus.publish(ScanProgress(current=1, total=1))

        assert fast.drain() == [ScanProgress(current=1, total=1)]
        assert slow.dropped == 1

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        subscription = bus.subscribe()
        assert bus.subscriber_count == 1

        subscription.close()
        subscription.close()

        assert bus.subscriber_count == 0
        assert bus.publish(ScanStarted()) == 0

    def test_get_times_out(self) -> None:
        assert EventBus().subscribe().get(timeout=0.01) is None


class TestEventSerialization:
    def test_to_dict(self) -> None:
        event = RenameFinished(anime_id=1, title="Frieren", count=3, failed=1)

        assert event.to_dict() == {
            "type": "RenameFinished",
            "payload": {"anime_id": 1, "title": "Frieren", "count": 3, "failed": 1},
        }
