"""
Unit tests for core/keyboard.py - KeyboardDispatcher

Exercised through the IntentEditor fixture so undo/redo replace the real store.
"""
import pytest
from core.keyboard import KeyAction, KeyEvent, resolve
from core.schemas import GREET_ID


# =============================================================================
# CHORD RESOLUTION
# =============================================================================

@pytest.mark.parametrize("event,expected", [
    (KeyEvent(key="Delete"), KeyAction.DELETE),
    (KeyEvent(key="Backspace"), KeyAction.DELETE),
    (KeyEvent(key="d", ctrl=True), KeyAction.DUPLICATE),
    (KeyEvent(key="d", meta=True), KeyAction.DUPLICATE),
    (KeyEvent(key="z", ctrl=True), KeyAction.UNDO),
    (KeyEvent(key="Z", ctrl=True, shift=True), KeyAction.REDO),
    (KeyEvent(key="y", meta=True), KeyAction.REDO),
    (KeyEvent(key="s", ctrl=True), KeyAction.SAVE),
    (KeyEvent(key="d"), None),
    (KeyEvent(key="a", ctrl=True), None),
    (KeyEvent(key="Enter"), None),
])
def test_resolve(event, expected):
    assert resolve(event) == expected


# =============================================================================
# DISPATCH
# =============================================================================

def test_delete_requires_confirmation(scheduler):
    from core.editor import IntentEditor

    answers = []
    editor = IntentEditor(scheduler=scheduler, confirm=lambda node_id: answers.pop(0))
    node = editor.operations.create()

    answers.append(False)
    assert editor.handle_key(KeyEvent(key="Delete"), node.id) is None
    assert editor.store.has_node(node.id)

    answers.append(True)
    assert editor.handle_key(KeyEvent(key="Delete"), node.id) == KeyAction.DELETE
    assert not editor.store.has_node(node.id)
    editor.close()


def test_delete_protected_never_asks(scheduler):
    from core.editor import IntentEditor

    asked = []
    editor = IntentEditor(scheduler=scheduler, confirm=lambda node_id: asked.append(node_id) or True)

    assert editor.handle_key(KeyEvent(key="Delete"), GREET_ID) is None
    assert asked == []
    assert editor.store.has_node(GREET_ID)
    editor.close()


def test_duplicate_chord(editor):
    assert editor.handle_key(KeyEvent(key="d", ctrl=True), GREET_ID) == KeyAction.DUPLICATE
    assert editor.store.node_count == 3


def test_text_focus_suppresses_dispatch(editor):
    """
    Validate the text-entry guard.

    Verifies:
    - Backspace in an INPUT/TEXTAREA or content-editable is ignored
    - The selected node survives
    """
    node = editor.operations.create()

    for event in (
        KeyEvent(key="Backspace", target_tag="input"),
        KeyEvent(key="Delete", target_tag="TEXTAREA"),
        KeyEvent(key="Delete", target_tag="DIV", target_editable=True),
        KeyEvent(key="d", ctrl=True, target_tag="INPUT"),
    ):
        assert editor.handle_key(event, node.id) is None

    assert editor.store.node_count == 3


def test_no_selection_does_nothing(editor, scheduler):
    saved = []
    editor.keyboard._on_save = lambda: saved.append(True)
    editor.operations.create()
    scheduler.advance(1.0)

    for event in (
        KeyEvent(key="Delete"),
        KeyEvent(key="d", ctrl=True),
        KeyEvent(key="z", ctrl=True),
        KeyEvent(key="s", ctrl=True),
    ):
        assert editor.handle_key(event, None) is None

    assert editor.store.node_count == 3
    assert saved == []


def test_undo_and_redo_chords(editor, scheduler):
    node = editor.operations.create()
    scheduler.advance(1.0)

    assert editor.handle_key(KeyEvent(key="z", ctrl=True), GREET_ID) == KeyAction.UNDO
    assert not editor.store.has_node(node.id)
    assert editor.handle_key(KeyEvent(key="z", ctrl=True), GREET_ID) is None

    assert editor.handle_key(KeyEvent(key="z", ctrl=True, shift=True), GREET_ID) == KeyAction.REDO
    assert editor.store.has_node(node.id)
    assert editor.handle_key(KeyEvent(key="y", ctrl=True), GREET_ID) is None


def test_save_chord_calls_collaborator(scheduler):
    from core.editor import IntentEditor

    saved = []
    editor = IntentEditor(scheduler=scheduler, on_save=lambda: saved.append(True))

    assert editor.handle_key(KeyEvent(key="s", meta=True), GREET_ID) == KeyAction.SAVE
    assert saved == [True]
    editor.close()


def test_save_without_collaborator_is_ignored(editor):
    assert editor.handle_key(KeyEvent(key="s", ctrl=True), GREET_ID) is None
