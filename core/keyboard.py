"""
INTENTGRAPH KEYBOARD DISPATCHER - Editor Shortcuts

Translates key chords into editing calls:

    Delete / Backspace      remove selected intent (after confirmation)
    Ctrl/Cmd + D            duplicate selected intent
    Ctrl/Cmd + Z            undo
    Ctrl/Cmd + Y            redo
    Ctrl/Cmd + Shift + Z    redo
    Ctrl/Cmd + S            save (handed to the persistence collaborator)

Nothing is dispatched while a text field has focus, so Backspace inside a
training phrase edits the phrase rather than deleting the intent. Nothing is
dispatched without a selected intent either.
"""
from typing import Callable, List, Optional, Tuple
from enum import Enum
import logging

import msgspec

from core.graph_db import GraphStore
from core.history import CommandHistory
from core.node_operations import NodeOperations


logger = logging.getLogger("intentgraph.keyboard")

TEXT_ENTRY_TAGS = frozenset({"INPUT", "TEXTAREA"})


class KeyAction(str, Enum):
    DELETE = "delete"
    DUPLICATE = "duplicate"
    UNDO = "undo"
    REDO = "redo"
    SAVE = "save"


class KeyEvent(msgspec.Struct, kw_only=True, frozen=True):
    """A key press as reported by the host UI."""
    key: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    target_tag: str = ""
    target_editable: bool = False

    @property
    def cmd_or_ctrl(self) -> bool:
        return self.ctrl or self.meta

    @property
    def in_text_entry(self) -> bool:
        return self.target_editable or self.target_tag.upper() in TEXT_ENTRY_TAGS


# For the shortcuts help dialog
SHORTCUTS: List[Tuple[str, str]] = [
    ("Delete", "Delete selected intent"),
    ("Ctrl+D", "Duplicate selected intent"),
    ("Ctrl+Z", "Undo"),
    ("Ctrl+Y / Ctrl+Shift+Z", "Redo"),
    ("Ctrl+S", "Save project"),
]


def resolve(event: KeyEvent) -> Optional[KeyAction]:
    """Map a chord to an action, ignoring focus and selection."""
    key = event.key.lower() if len(event.key) == 1 else event.key

    if key in ("Delete", "Backspace") and not event.cmd_or_ctrl:
        return KeyAction.DELETE
    if not event.cmd_or_ctrl:
        return None
    if key == "d":
        return KeyAction.DUPLICATE
    if key == "z":
        return KeyAction.REDO if event.shift else KeyAction.UNDO
    if key == "y":
        return KeyAction.REDO
    if key == "s":
        return KeyAction.SAVE
    return None


class KeyboardDispatcher:
    """
    Routes key chords to NodeOperations and CommandHistory.

    Args:
        store: Graph store (target of undo/redo replacements)
        operations: Node operations for delete/duplicate
        history: Command history for undo/redo
        confirm: Asks the user to confirm a deletion; receives the node id
        on_save: Persistence collaborator invoked by the save chord
    """

    def __init__(
        self,
        store: GraphStore,
        operations: NodeOperations,
        history: CommandHistory,
        confirm: Optional[Callable[[str], bool]] = None,
        on_save: Optional[Callable[[], None]] = None,
    ):
        self._store = store
        self._operations = operations
        self._history = history
        self._confirm = confirm or (lambda node_id: True)
        self._on_save = on_save

    def dispatch(self, event: KeyEvent, selected_id: Optional[str]) -> Optional[KeyAction]:
        """
        Handle one key press.

        Returns:
            The action that was carried out, or None if the press was ignored
            (text focus, no selection, unbound chord, or an inert action such
            as undo at the baseline)
        """
        if event.in_text_entry:
            return None
        if selected_id is None:
            return None

        action = resolve(event)
        if action is None:
            return None

        handled = {
            KeyAction.DELETE: self._delete,
            KeyAction.DUPLICATE: self._duplicate,
            KeyAction.UNDO: self._undo,
            KeyAction.REDO: self._redo,
            KeyAction.SAVE: self._save,
        }[action](selected_id)

        if handled:
            logger.debug(f"Dispatched {action.value} (selected={selected_id})")
            return action
        return None

    def _delete(self, selected_id: str) -> bool:
        if not self._operations.can_remove(selected_id):
            return False
        if not self._confirm(selected_id):
            return False
        return self._operations.remove(selected_id)

    def _duplicate(self, selected_id: str) -> bool:
        if not self._store.has_node(selected_id):
            return False
        self._operations.duplicate(selected_id)
        return True

    def _undo(self, selected_id: str) -> bool:
        graph = self._history.undo()
        if graph is None:
            return False
        self._store.replace(graph)
        return True

    def _redo(self, selected_id: str) -> bool:
        graph = self._history.redo()
        if graph is None:
            return False
        self._store.replace(graph)
        return True

    def _save(self, selected_id: str) -> bool:
        if self._on_save is None:
            return False
        self._on_save()
        return True
