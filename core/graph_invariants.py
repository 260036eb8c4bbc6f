"""
INTENTGRAPH GRAPH INVARIANTS - The Structural Gatekeeper

This module enforces the structure of an intent graph. If a candidate graph
is invalid, it is rejected BEFORE it touches the store.

Invariants Implemented:
1. Unique Node IDs: No two intents share an id
2. Unique Edge IDs: No two transitions share an id
3. No Dangling Edges: Every edge endpoint names a present intent
4. Stable Protection: The protected intents are exactly the ones the graph
   was created with
5. Reachability (warning only): Every intent can be reached from the entry

Design Philosophy:
- Checks run on detached FlowGraph values, never on live store state
- Violations are collected, not raised, so callers see every problem at once
- Checks are O(V+E)
"""
import rustworkx as rx
from typing import List, Tuple, Dict, Any, Optional, Set
from dataclasses import dataclass, field
from collections import Counter
from enum import Enum

from core.schemas import FlowGraph


# =============================================================================
# INVARIANT RESULTS
# =============================================================================

class InvariantSeverity(Enum):
    """Severity levels for invariant violations."""
    ERROR = "error"      # Graph must be rejected
    WARNING = "warning"  # Graph is usable but probably not what the user wants


@dataclass
class InvariantViolation:
    """A specific invariant violation."""
    invariant: str
    severity: InvariantSeverity
    message: str
    nodes_involved: List[str] = field(default_factory=list)
    edges_involved: List[str] = field(default_factory=list)


@dataclass
class InvariantReport:
    """Complete invariant validation report."""
    valid: bool
    violations: List[InvariantViolation]
    metrics: Dict[str, Any]

    @property
    def errors(self) -> List[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.ERROR]

    @property
    def warnings(self) -> List[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.WARNING]

    def summary(self) -> str:
        """One line per error, for exception messages."""
        return "; ".join(v.message for v in self.errors)


# =============================================================================
# GRAPH INVARIANTS
# =============================================================================

class GraphInvariants:
    """
    Structural validators for FlowGraph values.

    All methods are static. GraphStore calls `validate` before every
    wholesale replacement.
    """

    @staticmethod
    def validate_unique_node_ids(graph: FlowGraph) -> Optional[InvariantViolation]:
        counts = Counter(n.id for n in graph.nodes)
        duplicates = sorted(node_id for node_id, n in counts.items() if n > 1)
        if duplicates:
            return InvariantViolation(
                invariant="unique_node_ids",
                severity=InvariantSeverity.ERROR,
                message=f"Duplicate node ids: {', '.join(duplicates)}",
                nodes_involved=duplicates,
            )
        return None

    @staticmethod
    def validate_unique_edge_ids(graph: FlowGraph) -> Optional[InvariantViolation]:
        counts = Counter(e.id for e in graph.edges)
        duplicates = sorted(edge_id for edge_id, n in counts.items() if n > 1)
        if duplicates:
            return InvariantViolation(
                invariant="unique_edge_ids",
                severity=InvariantSeverity.ERROR,
                message=f"Duplicate edge ids: {', '.join(duplicates)}",
                edges_involved=duplicates,
            )
        return None

    @staticmethod
    def validate_edge_endpoints(graph: FlowGraph) -> Optional[InvariantViolation]:
        """Every edge must connect two intents that exist in the same graph."""
        node_ids = set(graph.node_ids())
        dangling = [
            e for e in graph.edges
            if e.source not in node_ids or e.target not in node_ids
        ]
        if dangling:
            missing = sorted(
                {e.source for e in dangling if e.source not in node_ids}
                | {e.target for e in dangling if e.target not in node_ids}
            )
            return InvariantViolation(
                invariant="edge_endpoints",
                severity=InvariantSeverity.ERROR,
                message=f"Edges reference missing nodes: {', '.join(missing)}",
                nodes_involved=missing,
                edges_involved=[e.id for e in dangling],
            )
        return None

    @staticmethod
    def validate_positions(graph: FlowGraph) -> Optional[InvariantViolation]:
        """Coordinates must be finite numbers."""
        bad = [n.id for n in graph.nodes if not n.position.is_finite()]
        if bad:
            return InvariantViolation(
                invariant="finite_positions",
                severity=InvariantSeverity.ERROR,
                message=f"Non-finite positions: {', '.join(bad)}",
                nodes_involved=bad,
            )
        return None

    @staticmethod
    def validate_protected_set(
        graph: FlowGraph,
        protected_ids: Set[str],
    ) -> Optional[InvariantViolation]:
        """The protected intents must be exactly `protected_ids`."""
        actual = {n.id for n in graph.nodes if n.is_protected}
        if actual == protected_ids:
            return None

        missing = sorted(protected_ids - actual)
        extra = sorted(actual - protected_ids)
        parts = []
        if missing:
            parts.append(f"missing protected nodes: {', '.join(missing)}")
        if extra:
            parts.append(f"unexpected protected nodes: {', '.join(extra)}")
        return InvariantViolation(
            invariant="protected_set",
            severity=InvariantSeverity.ERROR,
            message="Protected set changed (" + "; ".join(parts) + ")",
            nodes_involved=missing + extra,
        )

    @staticmethod
    def find_unreachable(graph: FlowGraph, entry_id: str) -> List[str]:
        """
        Intents with no path from the entry intent.

        Builds a throwaway rustworkx graph; the entry itself is always reachable.
        """
        node_ids = graph.node_ids()
        if entry_id not in node_ids:
            return []

        scratch = rx.PyDiGraph(multigraph=True)
        index: Dict[str, int] = {}
        for node_id in node_ids:
            index[node_id] = scratch.add_node(node_id)
        scratch.add_edges_from_no_data([
            (index[e.source], index[e.target])
            for e in graph.edges
            if e.source in index and e.target in index
        ])

        reachable = set(rx.descendants(scratch, index[entry_id]))
        reachable.add(index[entry_id])
        return [node_id for node_id in node_ids if index[node_id] not in reachable]

    @staticmethod
    def validate_reachability(
        graph: FlowGraph,
        entry_id: str,
        exempt: Tuple[str, ...] = (),
    ) -> Optional[InvariantViolation]:
        """Warn about intents the conversation can never reach."""
        unreachable = [
            node_id for node_id in GraphInvariants.find_unreachable(graph, entry_id)
            if node_id not in exempt
        ]
        if unreachable:
            return InvariantViolation(
                invariant="reachability",
                severity=InvariantSeverity.WARNING,
                message=f"{len(unreachable)} intent(s) unreachable from {entry_id}",
                nodes_involved=unreachable,
            )
        return None

    @staticmethod
    def validate(
        graph: FlowGraph,
        protected_ids: Optional[Set[str]] = None,
        entry_id: Optional[str] = None,
    ) -> InvariantReport:
        """
        Run every check and collect the results.

        Args:
            graph: Candidate graph
            protected_ids: Expected protected set. None skips the check
                          (used when the graph defines its own protected set).
            entry_id: Entry intent for the reachability warning. None skips it.
        """
        checks = [
            GraphInvariants.validate_unique_node_ids(graph),
            GraphInvariants.validate_unique_edge_ids(graph),
            GraphInvariants.validate_edge_endpoints(graph),
            GraphInvariants.validate_positions(graph),
        ]
        if protected_ids is not None:
            checks.append(GraphInvariants.validate_protected_set(graph, set(protected_ids)))
        if entry_id is not None:
            # Protected intents (the fallback) are reached by the matcher, not by edges
            exempt = tuple(n.id for n in graph.nodes if n.is_protected)
            checks.append(GraphInvariants.validate_reachability(graph, entry_id, exempt))

        violations = [v for v in checks if v is not None]
        valid = not any(v.severity == InvariantSeverity.ERROR for v in violations)

        return InvariantReport(
            valid=valid,
            violations=violations,
            metrics={
                "node_count": len(graph.nodes),
                "edge_count": len(graph.edges),
                "protected_count": sum(1 for n in graph.nodes if n.is_protected),
            },
        )
