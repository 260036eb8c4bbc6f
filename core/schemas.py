"""
INTENTGRAPH SCHEMAS - The Grammar of the Editor

This module defines the records that flow through the editing core:
- Position: Opaque canvas coordinate owned by the renderer
- IntentNode: One unit of conversational behaviour (a graph node)
- FlowEdge: An allowed transition between two intents
- FlowGraph: An ordered, detached copy of the whole graph
- HistoryEntry: A FlowGraph frozen at one instant for undo/redo
- BotMetadata: The small envelope carried alongside an exported graph

Design Principles:
1. STRICT TYPING: msgspec.Struct with no silent type coercion
2. KW_ONLY: Enforce keyword arguments to prevent positional mix-ups
3. IMMUTABLE IDS: Node/edge IDs are set once and never change
4. DETACHED COPIES: Lists never alias between the store and its callers
"""
from typing import List, Optional
from datetime import datetime, timezone
import math
import time
import uuid

import msgspec


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def now_utc() -> str:
    """Fast UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


def generate_id(prefix: str = "intent") -> str:
    """
    Generate a node/edge ID.

    Millisecond timestamp plus a random suffix, so rapid repeated calls within
    the same millisecond still produce distinct IDs.
    """
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


# =============================================================================
# GRAPH RECORDS
# =============================================================================

class Position(msgspec.Struct, frozen=True, kw_only=True):
    """Canvas coordinate. The core preserves it but never interprets it."""
    x: float = 0.0
    y: float = 0.0

    def offset(self, dx: float, dy: float) -> "Position":
        return Position(x=self.x + dx, y=self.y + dy)

    def is_finite(self) -> bool:
        """JSON has no inf/nan, so only finite coordinates survive an export."""
        return math.isfinite(self.x) and math.isfinite(self.y)


class IntentNode(msgspec.Struct, kw_only=True):
    """
    A conversational intent.

    `label`, `training_phrases` and `responses` are always present (possibly
    empty) because the test-chat simulator reads all three from every node.
    """
    id: str
    label: str
    training_phrases: List[str] = msgspec.field(default_factory=list)
    responses: List[str] = msgspec.field(default_factory=list)
    is_protected: bool = False
    position: Position = msgspec.field(default_factory=Position)


class FlowEdge(msgspec.Struct, kw_only=True):
    """A directed transition from one intent to another."""
    id: str
    source: str
    target: str


class FlowGraph(msgspec.Struct, kw_only=True):
    """Detached, ordered view of the graph (nodes and edges in insertion order)."""
    nodes: List[IntentNode] = msgspec.field(default_factory=list)
    edges: List[FlowEdge] = msgspec.field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def edge_ids(self) -> List[str]:
        return [e.id for e in self.edges]

    def find_node(self, node_id: str) -> Optional[IntentNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class HistoryEntry(msgspec.Struct, kw_only=True, frozen=True):
    """A graph snapshot recorded by the command history."""
    graph: FlowGraph
    timestamp: float = msgspec.field(default_factory=time.time)


class BotMetadata(msgspec.Struct, kw_only=True):
    """Project-level fields exported alongside the graph."""
    name: str = "My AI Assistant"
    avatar: str = "\U0001F916"
    personality: str = "helpful and friendly"


# =============================================================================
# COPY HELPERS
# =============================================================================

def clone_node(node: IntentNode, **changes) -> IntentNode:
    """
    Copy a node with fresh phrase/response lists.

    Position is frozen, so sharing it is safe.
    """
    cloned = msgspec.structs.replace(
        node,
        training_phrases=list(node.training_phrases),
        responses=list(node.responses),
    )
    if changes:
        cloned = msgspec.structs.replace(cloned, **changes)
    return cloned


def clone_edge(edge: FlowEdge) -> FlowEdge:
    return FlowEdge(id=edge.id, source=edge.source, target=edge.target)


def clone_graph(graph: FlowGraph) -> FlowGraph:
    """Deep, structurally independent copy of a graph."""
    return FlowGraph(
        nodes=[clone_node(n) for n in graph.nodes],
        edges=[clone_edge(e) for e in graph.edges],
    )


# =============================================================================
# SEED GRAPH
# =============================================================================

GREET_ID = "greet"
FALLBACK_ID = "fallback"


def seed_graph() -> FlowGraph:
    """
    The graph every new editor starts from.

    Greet is the conversation's entry intent and Fallback answers anything
    unmatched; both are protected for the lifetime of the graph.
    """
    greet = IntentNode(
        id=GREET_ID,
        label="Greet",
        training_phrases=["hello", "hi", "hey there", "good morning"],
        responses=[
            "Hello! How can I help you today?",
            "Hi there! What can I do for you?",
        ],
        is_protected=True,
        position=Position(x=300.0, y=100.0),
    )
    fallback = IntentNode(
        id=FALLBACK_ID,
        label="Fallback",
        training_phrases=[],
        responses=[
            "I didn't understand that. Can you try asking differently?",
            "Sorry, I'm not sure about that. What else can I help with?",
        ],
        is_protected=True,
        position=Position(x=300.0, y=400.0),
    )
    return FlowGraph(nodes=[greet, fallback], edges=[])


# =============================================================================
# QUICK-INTENT TEMPLATES
# =============================================================================

INTENT_TEMPLATES = {
    "greeting": {
        "label": "Greeting",
        "training_phrases": ["hello", "hi", "hey", "good morning"],
        "responses": ["Hello! How can I help you?", "Hi there! What can I do for you?"],
    },
    "question": {
        "label": "FAQ",
        "training_phrases": ["what is", "how do", "can you explain", "tell me about"],
        "responses": ["Let me explain that for you.", "Here's what you need to know."],
    },
    "action": {
        "label": "Action",
        "training_phrases": ["I want to", "help me", "I need", "can you"],
        "responses": ["I'll help you with that.", "Let me assist you."],
    },
}
