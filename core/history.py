"""
INTENTGRAPH COMMAND HISTORY - Debounced Undo/Redo

History is snapshot-based: every recorded step is a full, detached copy of
the graph. Steps are not recorded per mutation. Instead each change restarts
a debounce timer and a step is committed only once editing pauses for
`debounce_seconds`, so typing a whole response produces one undo step.

State Machine:
    IDLE --notify_change--> PENDING_SNAPSHOT
    PENDING_SNAPSHOT --notify_change--> PENDING_SNAPSHOT (timer restarted)
    PENDING_SNAPSHOT --timer elapses / flush--> IDLE (entry committed)

Undo and redo never go through the timer: they commit any pending step,
then move one entry between the stacks synchronously.

Stacks:
    _undo: [baseline, ..., current]   (never empty, capped at max_history)
    _redo: [..., next]                (cleared by any new change)
"""
from typing import Any, Callable, List, Optional
from enum import Enum
import asyncio
import logging
import threading
import time

from core.schemas import FlowGraph, HistoryEntry, clone_graph
from infrastructure.config import EditorConfig
from infrastructure.event_bus import EventBus, EventType, GraphEvent, MUTATION_EVENTS


logger = logging.getLogger("intentgraph.history")

# (delay_seconds, callback) -> handle with .cancel()
Scheduler = Callable[[float, Callable[[], None]], Any]


def default_scheduler(delay: float, callback: Callable[[], None]) -> Any:
    """
    Schedule `callback` after `delay` seconds.

    Uses the running asyncio loop when there is one (the host's event loop),
    otherwise a daemon thread timer. On the thread-timer path the commit
    happens off the editor's thread, so CommandHistory skips the
    HISTORY_COMMITTED event there; hosts without an asyncio loop that need
    the event should inject a scheduler that calls back on their own thread.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer
    return loop.call_later(delay, callback)


class HistoryState(str, Enum):
    IDLE = "idle"
    PENDING_SNAPSHOT = "pending_snapshot"


class CommandHistory:
    """
    Time-debounced undo/redo over graph snapshots.

    Usage:
        history = CommandHistory(store.snapshot())
        history.attach(store)            # record every store mutation

        graph = history.undo()
        if graph is not None:
            store.replace(graph)

    Args:
        baseline: Graph at editor start; the first entry, always reachable
        config: Supplies debounce_seconds and max_history
        scheduler: Timer factory (inject a manual one in tests)
        event_bus: Optional bus for HISTORY_COMMITTED events. Events are only
                   published from the thread that built the history.
    """

    def __init__(
        self,
        baseline: FlowGraph,
        config: Optional[EditorConfig] = None,
        scheduler: Optional[Scheduler] = None,
        event_bus: Optional[EventBus] = None,
    ):
        config = config or EditorConfig()
        self._delay = config.debounce_seconds
        self._max_history = config.max_history
        self._schedule = scheduler or default_scheduler
        self._event_bus = event_bus

        self._undo: List[HistoryEntry] = [HistoryEntry(graph=clone_graph(baseline))]
        self._redo: List[HistoryEntry] = []

        self._pending: Optional[FlowGraph] = None
        self._timer: Any = None
        self._generation = 0
        self._closed = False
        self._lock = threading.RLock()
        # The bus is single-threaded; only this thread may publish on it
        self._owner_thread = threading.get_ident()

        self._store = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> HistoryState:
        with self._lock:
            if self._pending is not None:
                return HistoryState.PENDING_SNAPSHOT
            return HistoryState.IDLE

    @property
    def can_undo(self) -> bool:
        with self._lock:
            return len(self._undo) > 1 or self._pending is not None

    @property
    def can_redo(self) -> bool:
        with self._lock:
            return bool(self._redo)

    @property
    def entries(self) -> List[HistoryEntry]:
        """Copies of the committed undo entries, oldest first (baseline included)."""
        with self._lock:
            return [
                HistoryEntry(graph=clone_graph(e.graph), timestamp=e.timestamp)
                for e in self._undo
            ]

    @property
    def redo_depth(self) -> int:
        with self._lock:
            return len(self._redo)

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # RECORDING
    # =========================================================================

    def notify_change(self, graph: FlowGraph) -> None:
        """
        Note that the graph changed; (re)start the debounce timer.

        A new change invalidates the redo future immediately.
        """
        with self._lock:
            if self._closed:
                return
            self._redo.clear()
            self._pending = clone_graph(graph)
            self._cancel_timer()
            self._generation += 1
            generation = self._generation
            self._timer = self._schedule(self._delay, lambda: self._on_timer(generation))

    def flush(self) -> bool:
        """Commit the pending change now. Returns False if nothing was pending."""
        with self._lock:
            if self._pending is None:
                return False
            self._cancel_timer()
            self._commit(self._pending)
            return True

    def checkpoint(self, graph: FlowGraph) -> None:
        """
        Record `graph` as a step immediately, bypassing the debounce.

        Used after wholesale changes such as a project import.
        """
        with self._lock:
            if self._closed:
                return
            self._cancel_timer()
            self._redo.clear()
            self._commit(clone_graph(graph))

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            # A restarted or cancelled timer may still fire once
            if self._closed or generation != self._generation or self._pending is None:
                return
            self._timer = None
            self._commit(self._pending)

    def _commit(self, graph: FlowGraph) -> None:
        self._pending = None
        self._timer = None
        self._undo.append(HistoryEntry(graph=graph, timestamp=time.time()))
        if len(self._undo) > self._max_history:
            del self._undo[: len(self._undo) - self._max_history]

        logger.debug(f"Committed history entry (depth={len(self._undo)})")
        if self._event_bus is not None and threading.get_ident() == self._owner_thread:
            self._event_bus.emit(
                EventType.HISTORY_COMMITTED, "command_history",
                depth=len(self._undo),
                node_count=len(graph.nodes),
                edge_count=len(graph.edges),
            )

    # =========================================================================
    # UNDO / REDO
    # =========================================================================

    def undo(self) -> Optional[FlowGraph]:
        """
        Step back one entry.

        Returns:
            A copy of the graph to restore, or None at the baseline
        """
        with self._lock:
            if self._closed:
                return None
            self.flush()
            if len(self._undo) <= 1:
                return None
            self._redo.append(self._undo.pop())
            logger.debug(f"Undo (depth={len(self._undo)}, redo={len(self._redo)})")
            return clone_graph(self._undo[-1].graph)

    def redo(self) -> Optional[FlowGraph]:
        """
        Step forward one entry.

        Returns:
            A copy of the graph to restore, or None if there is nothing to redo
        """
        with self._lock:
            if self._closed or not self._redo:
                return None
            entry = self._redo.pop()
            self._undo.append(entry)
            logger.debug(f"Redo (depth={len(self._undo)}, redo={len(self._redo)})")
            return clone_graph(entry.graph)

    def clear(self, baseline: Optional[FlowGraph] = None) -> None:
        """Drop all history, keeping `baseline` (default: the current top) as the only entry."""
        with self._lock:
            self._cancel_timer()
            self._pending = None
            top = baseline if baseline is not None else self._undo[-1].graph
            self._undo = [HistoryEntry(graph=clone_graph(top))]
            self._redo = []

    # =========================================================================
    # STORE WIRING / TEARDOWN
    # =========================================================================

    def attach(self, store) -> None:
        """Record every mutation of `store` (replacements are not recorded)."""
        self._store = store
        store.event_bus.subscribe_many(MUTATION_EVENTS, self._on_store_event)

    def detach(self) -> None:
        if self._store is None:
            return
        for event_type in MUTATION_EVENTS:
            self._store.event_bus.unsubscribe(event_type, self._on_store_event)
        self._store = None

    def _on_store_event(self, event: GraphEvent) -> None:
        if self._store is not None:
            self.notify_change(self._store.snapshot())

    def close(self) -> None:
        """Cancel any pending timer and stop recording. Idempotent."""
        with self._lock:
            self._cancel_timer()
            self._pending = None
            self._closed = True
        self.detach()
        logger.debug("Command history closed")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
