"""
INTENTGRAPH EDITOR - One Editing Session

Wires the editing core together for a host UI:

    EventBus ─┬─ GraphStore (seeded with Greet + Fallback)
              ├─ NodeOperations
              ├─ CommandHistory (attached to the store)
              ├─ SerializationCodec
              └─ KeyboardDispatcher

The host keeps one IntentEditor per open project and calls `close()` when
the editor is torn down so no late history snapshot fires afterwards.
"""
from typing import Callable, Optional, Union
import logging
import random

from core.schemas import BotMetadata, FlowGraph, seed_graph
from core.graph_db import GraphStore
from core.node_operations import NodeOperations
from core.history import CommandHistory, Scheduler
from core.codec import SerializationCodec
from core.keyboard import KeyAction, KeyboardDispatcher, KeyEvent
from infrastructure.config import EditorConfig
from infrastructure.event_bus import EventBus


logger = logging.getLogger("intentgraph.editor")


class IntentEditor:
    """
    Facade over one editing session.

    Usage:
        editor = IntentEditor(confirm=ask_user, on_save=save_to_dashboard)
        node = editor.operations.create()
        editor.operations.connect("greet", node.id)
        editor.undo()
        data = editor.export_json()
        editor.close()
    """

    def __init__(
        self,
        config: Optional[EditorConfig] = None,
        graph: Optional[FlowGraph] = None,
        metadata: Optional[BotMetadata] = None,
        scheduler: Optional[Scheduler] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        on_save: Optional[Callable[[], None]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or EditorConfig()
        self.metadata = metadata or BotMetadata(**{
            k: v for k, v in self.config.metadata.items()
            if k in BotMetadata.__struct_fields__
        })

        self.event_bus = EventBus()
        self.store = GraphStore(graph if graph is not None else seed_graph(), self.event_bus)
        self.operations = NodeOperations(self.store, self.config, rng)
        self.history = CommandHistory(
            self.store.snapshot(),
            config=self.config,
            scheduler=scheduler,
            event_bus=self.event_bus,
        )
        self.history.attach(self.store)
        self.codec = SerializationCodec(self.config.schema_version)
        self.keyboard = KeyboardDispatcher(
            self.store, self.operations, self.history,
            confirm=confirm, on_save=on_save,
        )

    # =========================================================================
    # HISTORY
    # =========================================================================

    def undo(self) -> bool:
        """Restore the previous step. Returns False at the baseline."""
        graph = self.history.undo()
        if graph is None:
            return False
        self.store.replace(graph)
        return True

    def redo(self) -> bool:
        """Re-apply an undone step. Returns False if there is none."""
        graph = self.history.redo()
        if graph is None:
            return False
        self.store.replace(graph)
        return True

    # =========================================================================
    # IMPORT / EXPORT
    # =========================================================================

    def export_json(self) -> bytes:
        return self.codec.encode(self.metadata, self.store.snapshot())

    def import_json(self, text: Union[str, bytes]) -> BotMetadata:
        """
        Load a project file into this editor.

        On success the import becomes its own undo step. On failure the
        graph, metadata and history are left exactly as they were.
        """
        self.history.flush()
        metadata = self.codec.import_project(self.store, text)
        self.metadata = metadata
        self.history.checkpoint(self.store.snapshot())
        return metadata

    # =========================================================================
    # INPUT
    # =========================================================================

    def handle_key(self, event: KeyEvent, selected_id: Optional[str]) -> Optional[KeyAction]:
        return self.keyboard.dispatch(event, selected_id)

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def close(self) -> None:
        """Cancel pending history timers and drop all subscriptions."""
        self.history.close()
        self.event_bus.clear_subscribers()
        logger.debug("Editor closed")
