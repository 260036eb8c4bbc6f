"""
INTENTGRAPH GRAPH STORE - The Canonical Intent Graph

This is the only place where intents and transitions are mutated. Everything
else (operations, history, codec, keyboard) either calls into the store or
reads detached snapshots of it.

Architecture (The Bridge Pattern):
  Python Layer (Editor Logic)
  - Uses string ids: "greet", "intent-1718000000000-3fa2b1c4"
  - Calls: store.add_node(node), store.remove_node("greet")

  Bridge Layer (This File)
  - _node_map: Dict[str, int]  (id -> index), insertion ordered
  - _inv_map:  Dict[int, str]  (index -> id)
  - _edge_map: Dict[str, int]  (edge id -> edge index), insertion ordered

  Rust Layer (rustworkx.PyDiGraph, multigraph)
  - Integer indices, reused after removal; never exposed to callers

Guarantees:
- Validate-then-commit: every check runs before the first write
- Cascade: removing an intent removes every transition touching it
- Detached reads: callers always receive copies, never stored objects
"""
import rustworkx as rx
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set
import logging

import msgspec
import polars as pl

from core.schemas import (
    IntentNode, FlowEdge, FlowGraph, Position,
    clone_node, clone_edge, generate_id, seed_graph,
)
from core.graph_invariants import GraphInvariants
from infrastructure.event_bus import EventBus, EventType


logger = logging.getLogger("intentgraph.graph_store")


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class IntentGraphError(Exception):
    """Base exception for editing-core errors."""
    pass


class NotFoundError(IntentGraphError):
    """Raised when a node id is not in the graph."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class DuplicateIdError(IntentGraphError):
    """Raised when attempting to add a node with an existing id."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node already exists: {node_id}")


class DanglingReferenceError(IntentGraphError):
    """Raised when an edge endpoint does not name a present node."""
    def __init__(self, source: str, target: str, missing: List[str]):
        self.source = source
        self.target = target
        self.missing = missing
        super().__init__(
            f"Cannot connect {source} -> {target}: missing {', '.join(missing)}"
        )


class InvalidGraphError(IntentGraphError):
    """Raised when a graph (or node) would violate a structural invariant."""
    def __init__(self, message: str, violations: Optional[list] = None):
        self.violations = violations or []
        super().__init__(message)


# Fields a patch may change; id and is_protected are fixed at creation
PATCHABLE_FIELDS = ("label", "training_phrases", "responses", "position")
IMMUTABLE_FIELDS = ("id", "is_protected")

_PATCH_TYPES = {
    "label": str,
    "training_phrases": List[str],
    "responses": List[str],
    "position": Position,
}


def _check_patch_value(key: str, value: Any) -> Any:
    """
    Validate one patch value against the node schema.

    Returns a fresh value (lists are new objects); raises ValueError on a
    mistyped value or a non-finite position.
    """
    if key == "position" and isinstance(value, Position):
        checked = value
    else:
        try:
            checked = msgspec.convert(value, type=_PATCH_TYPES[key])
        except msgspec.ValidationError as e:
            raise ValueError(f"Invalid value for {key}: {e}") from e

    if key == "position" and not checked.is_finite():
        raise ValueError(f"Position must be finite, got ({checked.x}, {checked.y})")
    if isinstance(checked, list):
        checked = list(checked)
    return checked


# =============================================================================
# GRAPH STORE
# =============================================================================

class GraphStore:
    """
    In-memory intent graph backed by rustworkx.

    Usage:
        store = GraphStore()                     # seeded with Greet + Fallback
        store.add_node(IntentNode(id="faq", label="FAQ"))
        edge = store.add_edge("greet", "faq")
        store.remove_node("faq")                 # also removes `edge`

    Thread Safety:
        NOT thread-safe. The host UI's event loop is the only writer.
    """

    def __init__(
        self,
        graph: Optional[FlowGraph] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Create a store holding `graph` (default: the seed graph).

        The protected intents of the initial graph become the store's
        permanent protected set.

        Raises:
            InvalidGraphError: If the initial graph is structurally invalid
        """
        initial = graph if graph is not None else seed_graph()
        report = GraphInvariants.validate(initial)
        if not report.valid:
            raise InvalidGraphError(f"Invalid initial graph: {report.summary()}", report.errors)

        self._event_bus = event_bus if event_bus is not None else EventBus()
        self._protected_ids: Set[str] = {n.id for n in initial.nodes if n.is_protected}
        self._entry_id: Optional[str] = next(
            (n.id for n in initial.nodes if n.is_protected), None
        )
        self._load(initial)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def node_count(self) -> int:
        """Number of intents in the graph."""
        return self._graph.num_nodes()

    @property
    def edge_count(self) -> int:
        """Number of transitions in the graph."""
        return self._graph.num_edges()

    @property
    def protected_ids(self) -> Set[str]:
        """Ids of the intents that can never be deleted."""
        return set(self._protected_ids)

    @property
    def entry_id(self) -> Optional[str]:
        """The conversation's entry intent (first protected node at creation)."""
        return self._entry_id

    # =========================================================================
    # NODE OPERATIONS
    # =========================================================================

    def add_node(self, node: IntentNode) -> IntentNode:
        """
        Add an intent.

        Returns:
            A copy of the stored node

        Raises:
            DuplicateIdError: If the id is already present
            InvalidGraphError: If the node claims protection (only the
                              initial graph may seed protected intents) or
                              its position is not finite
        """
        if node.id in self._node_map:
            raise DuplicateIdError(node.id)
        if node.is_protected:
            raise InvalidGraphError(
                f"Cannot add protected node {node.id}: protection is fixed at creation"
            )
        if not node.position.is_finite():
            raise InvalidGraphError(
                f"Cannot add node {node.id}: position "
                f"({node.position.x}, {node.position.y}) is not finite"
            )

        stored = clone_node(node)
        idx = self._graph.add_node(stored)
        self._node_map[stored.id] = idx
        self._inv_map[idx] = stored.id

        logger.debug(f"Added node {stored.id} ({stored.label!r})")
        self._publish(EventType.NODE_CREATED, node_id=stored.id, label=stored.label)
        return clone_node(stored)

    def get_node(self, node_id: str) -> IntentNode:
        """
        Retrieve a copy of an intent.

        Raises:
            NotFoundError: If node doesn't exist
        """
        return clone_node(self._graph[self._get_index(node_id)])

    def has_node(self, node_id: str) -> bool:
        """Check if a node exists."""
        return node_id in self._node_map

    def is_protected(self, node_id: str) -> bool:
        return node_id in self._protected_ids

    def update_node(self, node_id: str, patch: Mapping[str, Any]) -> IntentNode:
        """
        Merge `patch` into an existing intent.

        `id` and `is_protected` keys are ignored; lists are copied on the way
        in, so later changes to the caller's lists never reach the store.

        Returns:
            A copy of the updated node

        Raises:
            NotFoundError: If node doesn't exist
            ValueError: If the patch names an unknown field or carries a
                        mistyped value or non-finite position
        """
        idx = self._get_index(node_id)

        unknown = [k for k in patch if k not in PATCHABLE_FIELDS and k not in IMMUTABLE_FIELDS]
        if unknown:
            raise ValueError(f"Unknown node fields in patch: {', '.join(sorted(unknown))}")

        changes: Dict[str, Any] = {}
        for key in PATCHABLE_FIELDS:
            if key not in patch:
                continue
            changes[key] = _check_patch_value(key, patch[key])

        updated = clone_node(self._graph[idx], **changes)
        self._graph[idx] = updated

        logger.debug(f"Updated node {node_id}: {sorted(changes)}")
        self._publish(EventType.NODE_UPDATED, node_id=node_id, fields=sorted(changes))
        return clone_node(updated)

    def remove_node(self, node_id: str) -> bool:
        """
        Remove an intent and every transition touching it.

        Returns:
            True if removed; False (and no change) if the node is protected
            or absent
        """
        if node_id in self._protected_ids:
            logger.info(f"Refused to remove protected node {node_id}")
            return False
        if node_id not in self._node_map:
            return False

        idx = self._node_map[node_id]
        removed_edges = [
            edge_id for edge_id, edge_idx in self._edge_map.items()
            if self._edge_touches(edge_idx, node_id)
        ]
        for edge_id in removed_edges:
            del self._edge_map[edge_id]

        # rustworkx drops incident edges together with the node
        self._graph.remove_node(idx)
        del self._node_map[node_id]
        del self._inv_map[idx]

        logger.debug(f"Removed node {node_id} and {len(removed_edges)} edge(s)")
        self._publish(EventType.NODE_DELETED, node_id=node_id, removed_edges=removed_edges)
        return True

    def iter_nodes(self) -> Iterator[IntentNode]:
        """Iterate over copies of all intents, in insertion order."""
        for idx in self._node_map.values():
            yield clone_node(self._graph[idx])

    def get_all_nodes(self) -> List[IntentNode]:
        return list(self.iter_nodes())

    # =========================================================================
    # EDGE OPERATIONS
    # =========================================================================

    def add_edge(self, source: str, target: str) -> FlowEdge:
        """
        Add a transition with a generated id.

        Parallel transitions between the same ordered pair are allowed.

        Raises:
            DanglingReferenceError: If source or target doesn't exist
        """
        missing = [n for n in (source, target) if n not in self._node_map]
        if missing:
            raise DanglingReferenceError(source, target, sorted(set(missing)))

        edge_id = generate_id(f"e{source}-{target}")
        while edge_id in self._edge_map:
            edge_id = generate_id(f"e{source}-{target}")

        edge = FlowEdge(id=edge_id, source=source, target=target)
        edge_idx = self._graph.add_edge(self._node_map[source], self._node_map[target], edge)
        self._edge_map[edge_id] = edge_idx

        logger.debug(f"Added edge {edge_id}")
        self._publish(EventType.EDGE_CREATED, edge_id=edge_id, source_id=source, target_id=target)
        return clone_edge(edge)

    def get_edge(self, edge_id: str) -> FlowEdge:
        """
        Raises:
            KeyError: If the edge doesn't exist
        """
        if edge_id not in self._edge_map:
            raise KeyError(f"Edge not found: {edge_id}")
        return clone_edge(self._graph.get_edge_data_by_index(self._edge_map[edge_id]))

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self._edge_map

    def remove_edge(self, edge_id: str) -> bool:
        """Remove one transition. Returns False if it doesn't exist."""
        if edge_id not in self._edge_map:
            return False

        edge_idx = self._edge_map.pop(edge_id)
        edge = self._graph.get_edge_data_by_index(edge_idx)
        self._graph.remove_edge_from_index(edge_idx)

        logger.debug(f"Removed edge {edge_id}")
        self._publish(
            EventType.EDGE_DELETED,
            edge_id=edge_id, source_id=edge.source, target_id=edge.target,
        )
        return True

    def get_all_edges(self) -> List[FlowEdge]:
        """Copies of all transitions, in insertion order."""
        return [
            clone_edge(self._graph.get_edge_data_by_index(edge_idx))
            for edge_idx in self._edge_map.values()
        ]

    def edges_between(self, source: str, target: str) -> List[FlowEdge]:
        """All parallel transitions from `source` to `target`."""
        return [e for e in self.get_all_edges() if e.source == source and e.target == target]

    # =========================================================================
    # GRAPH TRAVERSAL
    # =========================================================================

    def get_successors(self, node_id: str) -> List[IntentNode]:
        """Intents reachable in one transition (deduplicated)."""
        idx = self._get_index(node_id)
        return [clone_node(n) for n in self._graph.successors(idx)]

    def get_predecessors(self, node_id: str) -> List[IntentNode]:
        """Intents with a transition into `node_id` (deduplicated)."""
        idx = self._get_index(node_id)
        return [clone_node(n) for n in self._graph.predecessors(idx)]

    def get_unreachable_nodes(self, entry_id: Optional[str] = None) -> List[str]:
        """Ids of intents with no path from the entry intent."""
        entry = entry_id or self._entry_id
        if entry is None or entry not in self._node_map:
            return []
        reachable = set(rx.descendants(self._graph, self._node_map[entry]))
        reachable.add(self._node_map[entry])
        return [node_id for node_id, idx in self._node_map.items() if idx not in reachable]

    # =========================================================================
    # SNAPSHOT / REPLACE
    # =========================================================================

    def snapshot(self) -> FlowGraph:
        """Deep copy of the current graph."""
        return FlowGraph(nodes=self.get_all_nodes(), edges=self.get_all_edges())

    def replace(self, graph: FlowGraph) -> None:
        """
        Atomically swap in a whole graph (undo/redo/import).

        The candidate is validated first; the new rustworkx graph is built
        off to the side and only then swapped in, so a failure at any point
        leaves the current graph untouched.

        Raises:
            InvalidGraphError: If the candidate violates an invariant
        """
        report = GraphInvariants.validate(graph, protected_ids=self._protected_ids)
        if not report.valid:
            logger.warning(f"Rejected graph replacement: {report.summary()}")
            raise InvalidGraphError(f"Invalid graph: {report.summary()}", report.errors)

        self._load(graph)

        logger.debug(f"Replaced graph ({self.node_count} nodes, {self.edge_count} edges)")
        self._publish(
            EventType.GRAPH_REPLACED,
            node_count=self.node_count, edge_count=self.edge_count,
        )

    def validate(self):
        """Invariant report for the current graph, including reachability warnings."""
        return GraphInvariants.validate(
            self.snapshot(),
            protected_ids=self._protected_ids,
            entry_id=self._entry_id,
        )

    # =========================================================================
    # TABULAR VIEWS (Polars)
    # =========================================================================

    def to_polars_nodes(self) -> pl.DataFrame:
        """
        Intents as a Polars DataFrame.

        Used by the test-chat simulator and for quick coverage checks
        (e.g. intents with no training phrases).
        """
        nodes = self.get_all_nodes()
        return pl.DataFrame(
            {
                "id": [n.id for n in nodes],
                "label": [n.label for n in nodes],
                "phrase_count": [len(n.training_phrases) for n in nodes],
                "response_count": [len(n.responses) for n in nodes],
                "is_protected": [n.is_protected for n in nodes],
                "x": [n.position.x for n in nodes],
                "y": [n.position.y for n in nodes],
            },
            schema={
                "id": pl.Utf8,
                "label": pl.Utf8,
                "phrase_count": pl.Int64,
                "response_count": pl.Int64,
                "is_protected": pl.Boolean,
                "x": pl.Float64,
                "y": pl.Float64,
            },
        )

    def to_polars_edges(self) -> pl.DataFrame:
        """Transitions as a Polars DataFrame."""
        edges = self.get_all_edges()
        return pl.DataFrame(
            {
                "id": [e.id for e in edges],
                "source": [e.source for e in edges],
                "target": [e.target for e in edges],
            },
            schema={"id": pl.Utf8, "source": pl.Utf8, "target": pl.Utf8},
        )

    # =========================================================================
    # INTERNAL UTILITIES
    # =========================================================================

    def _load(self, graph: FlowGraph) -> None:
        """Build fresh bridge maps for `graph` and swap them in."""
        new_graph = rx.PyDiGraph(multigraph=True)
        node_map: Dict[str, int] = {}
        inv_map: Dict[int, str] = {}
        edge_map: Dict[str, int] = {}

        for node in graph.nodes:
            idx = new_graph.add_node(clone_node(node))
            node_map[node.id] = idx
            inv_map[idx] = node.id
        for edge in graph.edges:
            edge_map[edge.id] = new_graph.add_edge(
                node_map[edge.source], node_map[edge.target], clone_edge(edge)
            )

        self._graph = new_graph
        self._node_map = node_map
        self._inv_map = inv_map
        self._edge_map = edge_map

    def _edge_touches(self, edge_idx: int, node_id: str) -> bool:
        edge = self._graph.get_edge_data_by_index(edge_idx)
        return edge.source == node_id or edge.target == node_id

    def _get_index(self, node_id: str) -> int:
        """Internal: get rustworkx index for a node id."""
        if node_id not in self._node_map:
            raise NotFoundError(node_id)
        return self._node_map[node_id]

    def _publish(self, event_type: EventType, **payload: Any) -> None:
        self._event_bus.emit(event_type, "graph_store", **payload)

    def __len__(self) -> int:
        """Return number of nodes."""
        return self.node_count

    def __contains__(self, node_id: str) -> bool:
        """Check if node exists."""
        return node_id in self._node_map

    def __repr__(self) -> str:
        return f"GraphStore(nodes={self.node_count}, edges={self.edge_count})"
