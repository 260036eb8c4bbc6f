"""
Unit tests for infrastructure/event_bus.py
"""
import logging

from infrastructure.event_bus import EventBus, EventType, GraphEvent, publish_notification


def make_event(event_type=EventType.NODE_CREATED, **payload):
    return GraphEvent(type=event_type, payload=payload, timestamp=0.0, source="test")


def test_subscribe_and_publish():
    bus = EventBus()
    received = []
    bus.subscribe(EventType.NODE_CREATED, received.append)

    bus.publish(make_event(node_id="a"))
    bus.publish(make_event(EventType.NODE_DELETED, node_id="a"))

    assert [e.payload["node_id"] for e in received] == ["a"]


def test_duplicate_subscription_ignored():
    bus = EventBus()
    handler = lambda event: None

    bus.subscribe(EventType.NODE_CREATED, handler)
    bus.subscribe(EventType.NODE_CREATED, handler)

    assert bus.subscriber_count(EventType.NODE_CREATED) == 1


def test_failing_handler_is_contained(caplog):
    """
    Validate that one faulty subscriber cannot break delivery.

    Verifies:
    - The error is logged
    - Later subscribers still receive the event
    """
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(EventType.EDGE_CREATED, broken)
    bus.subscribe(EventType.EDGE_CREATED, received.append)

    with caplog.at_level(logging.ERROR, logger="intentgraph.event_bus"):
        bus.publish(make_event(EventType.EDGE_CREATED))

    assert len(received) == 1
    assert "boom" in caplog.text


def test_unsubscribe_and_clear():
    bus = EventBus()
    handler = lambda event: None
    bus.subscribe_many([EventType.NODE_CREATED, EventType.NODE_UPDATED], handler)
    assert bus.subscriber_count() == 2

    bus.unsubscribe(EventType.NODE_CREATED, handler)
    assert bus.subscriber_count() == 1

    bus.clear_subscribers()
    assert bus.subscriber_count() == 0


def test_emit_and_publish_notification():
    bus = EventBus()
    received = []
    bus.subscribe(EventType.NOTIFICATION_CREATED, received.append)

    publish_notification(bus, "Saved", title="Done", related_node_id="greet")

    event = received[0]
    assert event.source == "node_operations"
    assert event.timestamp > 0
    assert event.payload == {
        "title": "Done",
        "message": "Saved",
        "urgency": "info",
        "related_node_id": "greet",
    }
