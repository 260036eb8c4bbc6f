"""
Pytest configuration and shared fixtures for the IntentGraph test suite.
"""
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


class ManualTimer:
    """Handle returned by ManualScheduler; mirrors threading.Timer.cancel()."""

    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """
    Deterministic stand-in for the debounce timer.

    Time only moves when a test calls `advance`.
    """

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def __call__(self, delay, callback):
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled and t.callback is not None]

    def advance(self, seconds):
        self.now += seconds
        for timer in list(self.timers):
            if not timer.cancelled and timer.callback is not None and timer.due <= self.now:
                callback, timer.callback = timer.callback, None
                callback()


@pytest.fixture
def scheduler():
    """Provide a manual debounce scheduler."""
    return ManualScheduler()


@pytest.fixture
def event_bus():
    from infrastructure.event_bus import EventBus
    return EventBus()


@pytest.fixture
def fresh_store(event_bus):
    """Provide a GraphStore seeded with Greet and Fallback."""
    from core.graph_db import GraphStore
    return GraphStore(event_bus=event_bus)


@pytest.fixture
def operations(fresh_store):
    """Provide NodeOperations over the seeded store with a fixed random seed."""
    from core.node_operations import NodeOperations
    return NodeOperations(fresh_store, rng=random.Random(42))


@pytest.fixture
def editor(scheduler):
    """Provide an IntentEditor driven by the manual scheduler."""
    from core.editor import IntentEditor
    ed = IntentEditor(scheduler=scheduler, rng=random.Random(7))
    yield ed
    ed.close()


@pytest.fixture
def recorded_events(event_bus):
    """Collect every event published on the shared bus."""
    from infrastructure.event_bus import EventType

    events = []
    for event_type in EventType:
        event_bus.subscribe(event_type, events.append)
    return events
