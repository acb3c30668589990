"""
Tests for the lifecycle event bus (src.core.events).
"""

from datetime import timezone

from src.core.events import EventBus, EventType


class TestEventBus:
    """Test publish/subscribe behaviour."""

    def test_publish_reaches_all_subscribers(self):
        bus = EventBus()
        first, second = [], []
        bus.subscribe(first.append)
        bus.subscribe(second.append)

        event = bus.publish(EventType.MODEL_LOADED, "default", "ready")

        assert first == [event]
        assert second == [event]
        assert event.subject == "default"
        assert event.message == "ready"
        assert event.timestamp.tzinfo == timezone.utc

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        bus.publish(EventType.SERVER_STARTED)

        assert received == []

    def test_failing_subscriber_is_isolated(self):
        """Test that one broken subscriber neither stops delivery nor raises."""
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        bus.subscribe(broken)
        bus.subscribe(received.append)

        bus.publish(EventType.ERROR, None, "Download failed")

        assert len(received) == 1
        assert received[0].type == EventType.ERROR

    def test_publish_without_subscribers(self):
        event = EventBus().publish(EventType.SERVER_STOPPED, "11434")
        assert event.type == EventType.SERVER_STOPPED
