"""
Unit tests for core/history.py - CommandHistory

The debounce timer is driven by the ManualScheduler fixture, so every test
is deterministic and instant.
"""
import threading

import pytest
from core.history import CommandHistory, HistoryState
from core.schemas import FlowGraph, IntentNode, seed_graph
from infrastructure.config import EditorConfig
from infrastructure.event_bus import EventType


def graph_with(*labels):
    graph = seed_graph()
    for i, label in enumerate(labels):
        graph.nodes.append(IntentNode(id=f"n{i}", label=label))
    return graph


@pytest.fixture
def history(scheduler):
    return CommandHistory(seed_graph(), config=EditorConfig(debounce_seconds=1.0), scheduler=scheduler)


# =============================================================================
# BASELINE / DEBOUNCE
# =============================================================================

def test_baseline_captured_on_construction(history):
    assert len(history.entries) == 1
    assert history.entries[0].graph == seed_graph()
    assert history.state == HistoryState.IDLE
    assert history.can_undo is False


def test_change_commits_after_pause(history, scheduler):
    """
    Validate the Idle -> PendingSnapshot -> Idle cycle.

    Verifies:
    - notify_change does not commit synchronously
    - The entry is committed once the debounce delay has elapsed
    """
    history.notify_change(graph_with("A"))

    assert history.state == HistoryState.PENDING_SNAPSHOT
    assert len(history.entries) == 1

    scheduler.advance(0.99)
    assert len(history.entries) == 1

    scheduler.advance(0.01)
    assert history.state == HistoryState.IDLE
    assert len(history.entries) == 2
    assert history.entries[-1].graph == graph_with("A")


def test_burst_coalesces_into_one_entry(history, scheduler):
    """
    Validate that N rapid changes inside one window produce one entry.

    Verifies:
    - Each change restarts the timer (old timers cancelled)
    - Only the last state of the burst is recorded
    """
    for i in range(20):
        history.notify_change(graph_with("x" * (i + 1)))
        scheduler.advance(0.5)

    assert len(history.entries) == 1
    assert len(scheduler.pending) == 1

    scheduler.advance(1.0)

    assert len(history.entries) == 2
    assert history.entries[-1].graph.nodes[-1].label == "x" * 20


def test_pending_graph_is_copied(history, scheduler):
    graph = graph_with("A")
    history.notify_change(graph)
    graph.nodes[-1].responses.append("mutated later")

    scheduler.advance(1.0)

    assert history.entries[-1].graph.nodes[-1].responses == []


# =============================================================================
# UNDO / REDO
# =============================================================================

def test_undo_at_baseline_is_noop(history):
    assert history.undo() is None
    assert len(history.entries) == 1


def test_redo_without_undo_is_noop(history):
    assert history.redo() is None


def test_undo_redo_roundtrip(history, scheduler):
    history.notify_change(graph_with("A"))
    scheduler.advance(1.0)
    history.notify_change(graph_with("A", "B"))
    scheduler.advance(1.0)

    assert history.undo() == graph_with("A")
    assert history.undo() == seed_graph()
    assert history.undo() is None
    assert history.redo() == graph_with("A")
    assert history.redo() == graph_with("A", "B")
    assert history.redo() is None


def test_undo_commits_pending_change_first(history):
    history.notify_change(graph_with("A"))

    restored = history.undo()

    assert restored == seed_graph()
    assert history.state == HistoryState.IDLE
    assert history.redo() == graph_with("A")


def test_new_change_clears_redo(history, scheduler):
    history.notify_change(graph_with("A"))
    scheduler.advance(1.0)
    history.undo()
    assert history.can_redo

    history.notify_change(graph_with("B"))

    assert history.can_redo is False
    assert history.redo() is None


def test_returned_graph_is_detached(history, scheduler):
    history.notify_change(graph_with("A"))
    scheduler.advance(1.0)
    history.undo()

    restored = history.redo()
    restored.nodes.clear()

    assert history.undo() == seed_graph()
    assert history.redo() == graph_with("A")


# =============================================================================
# CAPACITY / CHECKPOINTS
# =============================================================================

def test_history_depth_is_capped(scheduler):
    history = CommandHistory(
        seed_graph(),
        config=EditorConfig(debounce_seconds=0.1, max_history=3),
        scheduler=scheduler,
    )
    for label in "ABCDE":
        history.notify_change(graph_with(label))
        scheduler.advance(0.1)

    labels = [e.graph.nodes[-1].label for e in history.entries]
    assert labels == ["C", "D", "E"]
    assert history.undo() is not None
    assert history.undo() is not None
    assert history.undo() is None


def test_checkpoint_commits_immediately(history, scheduler):
    history.notify_change(graph_with("typing"))

    history.checkpoint(graph_with("imported"))
    scheduler.advance(5.0)

    assert [e.graph.nodes[-1].label for e in history.entries[1:]] == ["imported"]


def test_flush(history):
    assert history.flush() is False
    history.notify_change(graph_with("A"))
    assert history.flush() is True
    assert len(history.entries) == 2


def test_clear_keeps_current_top(history, scheduler):
    history.notify_change(graph_with("A"))
    scheduler.advance(1.0)

    history.clear()

    assert len(history.entries) == 1
    assert history.entries[0].graph == graph_with("A")
    assert history.undo() is None


def test_commit_publishes_event(scheduler, event_bus, recorded_events):
    history = CommandHistory(seed_graph(), scheduler=scheduler, event_bus=event_bus)
    history.notify_change(graph_with("A"))
    scheduler.advance(1.0)

    committed = [e for e in recorded_events if e.type == EventType.HISTORY_COMMITTED]
    assert committed[0].payload["depth"] == 2


# =============================================================================
# STORE WIRING / TEARDOWN
# =============================================================================

def test_attach_records_store_mutations_only(fresh_store, scheduler):
    history = CommandHistory(fresh_store.snapshot(), scheduler=scheduler)
    history.attach(fresh_store)

    fresh_store.add_node(IntentNode(id="n1", label="One"))
    fresh_store.update_node("n1", {"label": "Uno"})
    scheduler.advance(1.0)
    fresh_store.replace(seed_graph())
    scheduler.advance(1.0)

    assert len(history.entries) == 2
    assert history.entries[-1].graph.find_node("n1").label == "Uno"


def test_close_cancels_pending_timer(fresh_store, scheduler):
    history = CommandHistory(fresh_store.snapshot(), scheduler=scheduler)
    history.attach(fresh_store)
    fresh_store.add_node(IntentNode(id="n1", label="One"))

    history.close()
    scheduler.advance(10.0)
    fresh_store.add_node(IntentNode(id="n2", label="Two"))
    scheduler.advance(10.0)

    assert history.closed
    assert len(history.entries) == 1
    assert scheduler.pending == []
    assert history.undo() is None


def test_default_scheduler_uses_thread_timer_outside_loop():
    from core.history import default_scheduler

    fired = []
    handle = default_scheduler(60.0, lambda: fired.append(True))
    handle.cancel()

    assert fired == []


def test_entries_are_detached_copies(history, scheduler):
    history.notify_change(graph_with("A"))
    scheduler.advance(1.0)

    leaked = history.entries[-1]
    leaked.graph.nodes.clear()
    leaked.graph.edges.append(None)

    assert history.entries[-1].graph == graph_with("A")
    assert history.undo() == seed_graph()
    assert history.redo() == graph_with("A")


class _ThreadTimer:
    def __init__(self, callback):
        self.thread = threading.Thread(target=callback)

    def cancel(self):
        pass


def test_off_thread_commit_skips_bus(event_bus, recorded_events):
    """
    Validate that a timer firing on another thread never touches the bus.

    Verifies:
    - The entry is still committed
    - No HISTORY_COMMITTED event is published from the timer thread
    """
    timers = []

    def thread_scheduler(delay, callback):
        timer = _ThreadTimer(callback)
        timers.append(timer)
        return timer

    history = CommandHistory(seed_graph(), scheduler=thread_scheduler, event_bus=event_bus)
    history.notify_change(graph_with("A"))
    timers[-1].thread.start()
    timers[-1].thread.join(timeout=5)

    assert len(history.entries) == 2
    assert not [e for e in recorded_events if e.type == EventType.HISTORY_COMMITTED]
