"""
INTENTGRAPH NODE OPERATIONS - User-Level Editing Verbs

The layer the canvas, side panel and keyboard talk to. Each verb applies the
editor's policies (naming, placement, protection, confirmation) and then
delegates the actual write to GraphStore.

Deletion is two-phase: `can_remove` is a pure predicate the UI uses to decide
whether to show its confirmation dialog, and `remove` is only called after
the user has confirmed.

Failures raised by the store are turned into error notifications on the
event bus (the UI shows them as toasts) and then re-raised to the caller.
"""
from typing import Any, Callable, Optional, TypeVar
import logging
import random

from core.schemas import (
    IntentNode, FlowEdge, Position, INTENT_TEMPLATES,
    clone_node, generate_id,
)
from core.graph_db import GraphStore, IntentGraphError
from infrastructure.config import EditorConfig
from infrastructure.event_bus import publish_notification


logger = logging.getLogger("intentgraph.node_operations")

T = TypeVar("T")

# Quick-intent placement: a band below the seed intents
TEMPLATE_ORIGIN = (200.0, 300.0)
TEMPLATE_SPAN = (400.0, 200.0)


class NodeOperations:
    """
    Intent-level editing operations layered on a GraphStore.

    Args:
        store: The editor's graph store
        config: Naming and placement policy
        rng: Random source for placement (inject a seeded one in tests)
    """

    def __init__(
        self,
        store: GraphStore,
        config: Optional[EditorConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self._store = store
        self._config = config or EditorConfig()
        self._rng = rng or random.Random()

    @property
    def store(self) -> GraphStore:
        return self._store

    # =========================================================================
    # CREATION
    # =========================================================================

    def create(self) -> IntentNode:
        """Add a blank intent at a random spot on the canvas."""
        node = IntentNode(
            id=self._fresh_id(),
            label=self._config.default_label,
            training_phrases=[],
            responses=[],
            is_protected=False,
            position=self._random_position(
                self._config.placement_origin, self._config.placement_span
            ),
        )
        created = self._guarded(lambda: self._store.add_node(node), "Could not add intent")
        self._notify("Intent added", f"{created.label} has been added to your bot", created.id)
        return created

    def create_from_template(self, kind: str) -> IntentNode:
        """
        Add a pre-filled quick intent ("greeting", "question" or "action").

        Raises:
            KeyError: If `kind` is not a known template
        """
        if kind not in INTENT_TEMPLATES:
            raise KeyError(f"Unknown intent template: {kind}")

        template = INTENT_TEMPLATES[kind]
        node = IntentNode(
            id=self._fresh_id(kind),
            label=template["label"],
            training_phrases=list(template["training_phrases"]),
            responses=list(template["responses"]),
            position=self._random_position(TEMPLATE_ORIGIN, TEMPLATE_SPAN),
        )
        created = self._guarded(lambda: self._store.add_node(node), "Could not add intent")
        self._notify(
            "Quick Intent Added",
            f"{created.label} intent has been added to your bot",
            created.id,
        )
        return created

    def duplicate(self, node_id: str) -> IntentNode:
        """
        Copy an intent next to the original.

        The copy always gets a fresh id and is never protected, even when
        the original is.

        Raises:
            NotFoundError: If the node doesn't exist
        """
        source = self._guarded(lambda: self._store.get_node(node_id), "Could not duplicate intent")
        dx, dy = self._config.duplicate_offset
        copy = clone_node(
            source,
            id=self._fresh_id(),
            label=source.label + self._config.copy_suffix,
            is_protected=False,
            position=source.position.offset(dx, dy),
        )
        created = self._guarded(lambda: self._store.add_node(copy), "Could not duplicate intent")
        self._notify("Intent duplicated", f"{created.label} has been created", created.id)
        return created

    # =========================================================================
    # UPDATES
    # =========================================================================

    def update(self, node_id: str, **patch: Any) -> IntentNode:
        """
        Change an intent's label, phrases, responses or position.

        Raises:
            NotFoundError: If the node doesn't exist
            ValueError: If a patch key is not a node field or a value is mistyped
        """
        return self._guarded(
            lambda: self._store.update_node(node_id, patch),
            "Could not update intent",
        )

    def move(self, node_id: str, position: Position) -> IntentNode:
        """Record the end of a drag gesture."""
        return self.update(node_id, position=position)

    # =========================================================================
    # DELETION
    # =========================================================================

    def can_remove(self, node_id: str) -> bool:
        """True if the node exists and is not protected."""
        return self._store.has_node(node_id) and not self._store.is_protected(node_id)

    def remove(self, node_id: str) -> bool:
        """
        Delete an intent and its transitions.

        Call only after the user has confirmed. Returns False, with a warning
        notification, for protected or missing intents.
        """
        if not self.can_remove(node_id):
            reason = "is protected" if self._store.is_protected(node_id) else "does not exist"
            logger.warning(f"Remove refused: {node_id} {reason}")
            publish_notification(
                self._store.event_bus,
                f"Intent {node_id} {reason} and cannot be deleted",
                urgency="warning",
                title="Cannot delete intent",
                related_node_id=node_id,
            )
            return False

        removed = self._store.remove_node(node_id)
        if removed:
            self._notify("Intent deleted", f"Intent {node_id} has been removed", node_id)
        return removed

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def connect(self, source: str, target: str) -> FlowEdge:
        """
        Add a transition. Parallel transitions are allowed.

        Raises:
            DanglingReferenceError: If either endpoint doesn't exist
        """
        edge = self._guarded(
            lambda: self._store.add_edge(source, target),
            "Could not connect intents",
        )
        self._notify(
            "Connection Created",
            "Intents are now connected in the conversation flow",
            source,
        )
        return edge

    def disconnect(self, edge_id: str) -> bool:
        """Remove one transition. Returns False if it doesn't exist."""
        return self._store.remove_edge(edge_id)

    # =========================================================================
    # INTERNAL UTILITIES
    # =========================================================================

    def _fresh_id(self, prefix: str = "intent") -> str:
        node_id = generate_id(prefix)
        while self._store.has_node(node_id):
            node_id = generate_id(prefix)
        return node_id

    def _random_position(self, origin, span) -> Position:
        return Position(
            x=origin[0] + self._rng.random() * span[0],
            y=origin[1] + self._rng.random() * span[1],
        )

    def _guarded(self, action: Callable[[], T], title: str) -> T:
        """Run a store call, reporting any editing-core error before re-raising."""
        try:
            return action()
        except (IntentGraphError, ValueError) as e:
            logger.warning(f"{title}: {e}")
            publish_notification(
                self._store.event_bus,
                str(e),
                urgency="error",
                title=title,
                related_node_id=getattr(e, "node_id", None),
            )
            raise

    def _notify(self, title: str, message: str, node_id: Optional[str]) -> None:
        publish_notification(
            self._store.event_bus,
            message,
            urgency="info",
            title=title,
            related_node_id=node_id,
        )
