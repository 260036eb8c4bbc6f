"""
INTENTGRAPH CORE - Central exports for the graph-editing core.

This module provides access to:
- Graph records (IntentNode, FlowEdge, FlowGraph)
- The canonical store (GraphStore) and its errors
- Editing verbs (NodeOperations), undo/redo (CommandHistory)
- Project import/export (SerializationCodec)
- Keyboard shortcuts (KeyboardDispatcher) and the IntentEditor facade
"""

from core.schemas import (
    Position,
    IntentNode,
    FlowEdge,
    FlowGraph,
    HistoryEntry,
    BotMetadata,
    seed_graph,
)
from core.graph_db import (
    GraphStore,
    IntentGraphError,
    NotFoundError,
    DuplicateIdError,
    DanglingReferenceError,
    InvalidGraphError,
)
from core.node_operations import NodeOperations
from core.history import CommandHistory, HistoryState
from core.codec import SerializationCodec, CodecError, ParseError, SchemaError
from core.keyboard import KeyboardDispatcher, KeyEvent, KeyAction
from core.editor import IntentEditor

__all__ = [
    # Records
    "Position",
    "IntentNode",
    "FlowEdge",
    "FlowGraph",
    "HistoryEntry",
    "BotMetadata",
    "seed_graph",
    # Store
    "GraphStore",
    "IntentGraphError",
    "NotFoundError",
    "DuplicateIdError",
    "DanglingReferenceError",
    "InvalidGraphError",
    # Editing
    "NodeOperations",
    "CommandHistory",
    "HistoryState",
    "SerializationCodec",
    "CodecError",
    "ParseError",
    "SchemaError",
    "KeyboardDispatcher",
    "KeyEvent",
    "KeyAction",
    "IntentEditor",
]
