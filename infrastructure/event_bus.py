"""
Lightweight event bus for decoupled graph change notifications.

Follows publisher-subscriber pattern so the graph store never needs to know
who is listening (command history, toasts, the canvas).

Design Principles:
- Publisher-subscriber pattern (decoupled)
- One bus per editor instance, passed by handle (no module-level singleton)
- Synchronous delivery on the caller's thread (the host UI event loop)
- Type-safe events via msgspec

Architecture:
    GraphStore / NodeOperations → EventBus → [CommandHistory, UI toasts]

Usage:
    bus = EventBus()
    bus.subscribe(EventType.NODE_CREATED, lambda event: print(event.payload))
    bus.publish(GraphEvent(
        type=EventType.NODE_CREATED,
        payload={"node_id": "greet"},
        timestamp=time.time(),
        source="graph_store",
    ))
"""
from typing import Callable, List, Dict, Any, Iterable, Optional
from enum import Enum
from collections import defaultdict
import logging
import time

import msgspec


logger = logging.getLogger("intentgraph.event_bus")


class EventType(str, Enum):
    """Types of events published by the editing core."""
    NODE_CREATED = "node_created"
    NODE_UPDATED = "node_updated"
    NODE_DELETED = "node_deleted"
    EDGE_CREATED = "edge_created"
    EDGE_DELETED = "edge_deleted"
    GRAPH_REPLACED = "graph_replaced"
    HISTORY_COMMITTED = "history_committed"
    NOTIFICATION_CREATED = "notification_created"


# Events that represent a user edit (as opposed to a wholesale replacement)
MUTATION_EVENTS = (
    EventType.NODE_CREATED,
    EventType.NODE_UPDATED,
    EventType.NODE_DELETED,
    EventType.EDGE_CREATED,
    EventType.EDGE_DELETED,
)


class GraphEvent(msgspec.Struct, kw_only=True):
    """
    Event emitted when the editor state changes.

    Attributes:
        type: Type of event (NODE_CREATED, EDGE_CREATED, etc.)
        payload: Event-specific data (node_id, edge_id, etc.)
        timestamp: Unix timestamp when event occurred
        source: Component that emitted the event ("graph_store", "node_operations")
    """
    type: EventType
    payload: Dict[str, Any]
    timestamp: float
    source: str


class EventBus:
    """
    Event bus for graph change notifications.

    Thread Safety:
        NOT thread-safe. The editing core runs on a single logical thread.

    Performance:
        - O(1) event publishing
        - O(n) notification per event type (where n = subscriber count)
    """

    def __init__(self):
        """Initialize empty subscriber lists."""
        self._subscribers: Dict[EventType, List[Callable]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Callable[[GraphEvent], None]):
        """
        Subscribe to events with a synchronous handler.

        Subscribing the same handler twice is a no-op.
        """
        if handler not in self._subscribers[event_type]:
            self._subscribers[event_type].append(handler)
            logger.debug(f"Subscribed handler to {event_type.value}")

    def subscribe_many(self, event_types: Iterable[EventType], handler: Callable[[GraphEvent], None]):
        """Subscribe one handler to several event types."""
        for event_type in event_types:
            self.subscribe(event_type, handler)

    def publish(self, event: GraphEvent):
        """
        Publish an event to all subscribers.

        Note:
            - Handlers run immediately, in subscription order
            - Exceptions in handlers are logged but don't propagate, so a
              faulty listener can never undo a committed mutation
        """
        logger.debug(
            f"Publishing {event.type.value} from {event.source} "
            f"(payload keys: {list(event.payload.keys())})"
        )

        for handler in list(self._subscribers[event.type]):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Error in handler for {event.type.value}: {e}",
                    exc_info=True
                )

    def emit(self, event_type: EventType, source: str, **payload: Any):
        """Shorthand for publishing an event stamped with the current time."""
        self.publish(GraphEvent(
            type=event_type,
            payload=payload,
            timestamp=time.time(),
            source=source,
        ))

    def unsubscribe(self, event_type: EventType, handler: Callable):
        """Unsubscribe a handler (must be the same instance)."""
        if handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)
            logger.debug(f"Unsubscribed handler from {event_type.value}")

    def clear_subscribers(self, event_type: Optional[EventType] = None):
        """
        Clear all subscribers for an event type (or all types).

        Warning:
            This is primarily for teardown and testing.
        """
        if event_type is None:
            self._subscribers.clear()
            logger.info("Cleared all event subscribers")
        else:
            self._subscribers[event_type].clear()
            logger.info(f"Cleared subscribers for {event_type.value}")

    def subscriber_count(self, event_type: Optional[EventType] = None) -> int:
        """Get count of subscribers for an event type (None = all types)."""
        if event_type is None:
            return sum(len(handlers) for handlers in self._subscribers.values())
        return len(self._subscribers[event_type])


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def publish_notification(
    bus: EventBus,
    message: str,
    urgency: str = "info",
    title: str = "",
    related_node_id: Optional[str] = None,
    source: str = "node_operations",
):
    """
    Publish a NOTIFICATION_CREATED event for the UI's toast collaborator.

    Args:
        bus: The editor's event bus
        message: Human-readable notification message
        urgency: Urgency level (info, warning, error)
        title: Short headline for the toast
        related_node_id: Optional node ID this notification relates to
        source: Source of the event
    """
    bus.emit(
        EventType.NOTIFICATION_CREATED,
        source,
        title=title,
        message=message,
        urgency=urgency,
        related_node_id=related_node_id,
    )
