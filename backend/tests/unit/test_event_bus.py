"""
Unit tests for the in-process usage event bus.
"""

from datetime import datetime, timezone

from services.event_bus import EventBus, UsageEvent, USAGE_STARTED, USAGE_ENDED


def _event(event_type: str = USAGE_STARTED) -> UsageEvent:
    start = datetime(2025, 1, 28, 10, 0, tzinfo=timezone.utc)
    end = datetime(2025, 1, 28, 11, 0, tzinfo=timezone.utc) if event_type == USAGE_ENDED else None
    return UsageEvent(event_type=event_type, resource_id=1, user_id=2, start_time=start, end_time=end)


class TestEventBus:
    """Test subscription and delivery."""

    def test_handlers_called_in_subscription_order(self):
        """Handlers receive the event in the order they subscribed."""
        bus = EventBus()
        calls = []
        bus.subscribe(USAGE_STARTED, lambda e: calls.append(("first", e.resource_id)))
        bus.subscribe(USAGE_STARTED, lambda e: calls.append(("second", e.resource_id)))

        delivered = bus.emit(USAGE_STARTED, _event())

        assert delivered == 2
        assert calls == [("first", 1), ("second", 1)]

    def test_only_matching_event_type_is_delivered(self):
        """Subscribers of one event type do not see others."""
        bus = EventBus()
        started = []
        bus.subscribe(USAGE_STARTED, started.append)

        assert bus.emit(USAGE_ENDED, _event(USAGE_ENDED)) == 0
        assert started == []

    def test_failing_handler_does_not_stop_others(self, caplog):
        """A raising handler is logged; later handlers still run and emit does not raise."""
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(USAGE_ENDED, broken)
        bus.subscribe(USAGE_ENDED, received.append)

        with caplog.at_level("ERROR"):
            delivered = bus.emit(USAGE_ENDED, _event(USAGE_ENDED))

        assert delivered == 1
        assert len(received) == 1
        assert "boom" in caplog.text

    def test_subscribe_is_idempotent(self):
        """Subscribing the same handler twice registers it once."""
        bus = EventBus()
        received = []
        bus.subscribe(USAGE_STARTED, received.append)
        bus.subscribe(USAGE_STARTED, received.append)

        assert bus.emit(USAGE_STARTED, _event()) == 1
        assert len(received) == 1

    def test_unsubscribe(self):
        """Unsubscribed handlers no longer receive events."""
        bus = EventBus()
        received = []
        bus.subscribe(USAGE_STARTED, received.append)
        bus.unsubscribe(USAGE_STARTED, received.append)

        assert bus.emit(USAGE_STARTED, _event()) == 0
        assert received == []

    def test_occurred_at(self):
        """Started events refer to the start time, ended events to the end time."""
        assert _event(USAGE_STARTED).occurred_at.hour == 10
        assert _event(USAGE_ENDED).occurred_at.hour == 11
