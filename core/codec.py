"""
INTENTGRAPH SERIALIZATION CODEC - Project Import/Export

Converts {metadata, graph} to a portable JSON envelope and back.

Wire Format (version "1.0"):
    {
      "name": "My AI Assistant",
      "avatar": "🤖",
      "personality": "helpful and friendly",
      "nodes": [{"id", "label", "trainingPhrases", "responses",
                 "isProtected", "position": {"x", "y"}}],
      "edges": [{"id", "source", "target"}],
      "version": "1.0",
      "exportedAt": "2024-01-01T00:00:00+00:00"
    }

Every listed field is required on import; unknown fields are ignored.
`exportedAt` is informational only.

Import is decode-then-validate-then-commit: the store is only touched by
GraphStore.replace, which rejects invalid graphs without side effects.
"""
from typing import List, Tuple, Union
import logging

import msgspec

from core.schemas import (
    BotMetadata, FlowEdge, FlowGraph, IntentNode, Position, now_utc,
)
from core.graph_db import GraphStore, IntentGraphError


logger = logging.getLogger("intentgraph.codec")

SCHEMA_VERSION = "1.0"
SUPPORTED_VERSIONS = frozenset({SCHEMA_VERSION})


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class CodecError(IntentGraphError):
    """Base exception for import/export failures."""
    pass


class ParseError(CodecError):
    """Raised when the input is not well-formed JSON."""
    pass


class SchemaError(CodecError):
    """Raised when the JSON does not have the envelope's shape."""
    pass


# =============================================================================
# WIRE STRUCTS
# =============================================================================
# Separate from core.schemas so that every field is required on the wire
# while the in-memory records keep their convenient defaults.

class WirePosition(msgspec.Struct, kw_only=True):
    x: float
    y: float


class WireNode(msgspec.Struct, kw_only=True, rename="camel"):
    id: str
    label: str
    training_phrases: List[str]
    responses: List[str]
    is_protected: bool
    position: WirePosition


class WireEdge(msgspec.Struct, kw_only=True):
    id: str
    source: str
    target: str


class ProjectEnvelope(msgspec.Struct, kw_only=True, rename="camel"):
    """The exported project document."""
    name: str
    avatar: str
    personality: str
    nodes: List[WireNode]
    edges: List[WireEdge]
    version: str
    exported_at: str


_envelope_encoder = msgspec.json.Encoder()


# =============================================================================
# CODEC
# =============================================================================

class SerializationCodec:
    """
    Encoder/decoder for project envelopes.

    Usage:
        codec = SerializationCodec()
        data = codec.encode(metadata, store.snapshot())
        metadata = codec.import_project(store, data)
    """

    def __init__(self, version: str = SCHEMA_VERSION):
        if version not in SUPPORTED_VERSIONS:
            raise ValueError(f"Unsupported schema version: {version}")
        self._version = version

    @property
    def version(self) -> str:
        return self._version

    # =========================================================================
    # EXPORT
    # =========================================================================

    def export_project(self, metadata: BotMetadata, graph: FlowGraph) -> ProjectEnvelope:
        """Wrap metadata and graph in a versioned, timestamped envelope."""
        return ProjectEnvelope(
            name=metadata.name,
            avatar=metadata.avatar,
            personality=metadata.personality,
            nodes=[_node_to_wire(n) for n in graph.nodes],
            edges=[WireEdge(id=e.id, source=e.source, target=e.target) for e in graph.edges],
            version=self._version,
            exported_at=now_utc(),
        )

    def encode(self, metadata: BotMetadata, graph: FlowGraph) -> bytes:
        """Export straight to JSON bytes."""
        envelope = self.export_project(metadata, graph)
        logger.debug(f"Exporting {len(envelope.nodes)} nodes, {len(envelope.edges)} edges")
        return _envelope_encoder.encode(envelope)

    # =========================================================================
    # IMPORT
    # =========================================================================

    def parse(self, text: Union[str, bytes]) -> ProjectEnvelope:
        """
        Parse and shape-check an envelope.

        Raises:
            ParseError: If `text` is not well-formed UTF-8 JSON
            SchemaError: If required fields are missing or mistyped, or the
                        version is not supported
        """
        try:
            raw = msgspec.json.decode(text)
        except (msgspec.DecodeError, UnicodeError) as e:
            raise ParseError(f"Project file is not valid JSON: {e}") from e

        if not isinstance(raw, dict):
            raise SchemaError(f"Project file must be a JSON object, got {type(raw).__name__}")

        try:
            envelope = msgspec.convert(raw, type=ProjectEnvelope)
        except msgspec.ValidationError as e:
            raise SchemaError(f"Project file has the wrong shape: {e}") from e

        if envelope.version not in SUPPORTED_VERSIONS:
            raise SchemaError(f"Unsupported project version: {envelope.version!r}")
        return envelope

    def decode(self, text: Union[str, bytes]) -> Tuple[BotMetadata, FlowGraph]:
        """Parse an envelope into metadata and a detached graph."""
        envelope = self.parse(text)
        metadata = BotMetadata(
            name=envelope.name,
            avatar=envelope.avatar,
            personality=envelope.personality,
        )
        graph = FlowGraph(
            nodes=[_node_from_wire(n) for n in envelope.nodes],
            edges=[FlowEdge(id=e.id, source=e.source, target=e.target) for e in envelope.edges],
        )
        return metadata, graph

    def import_project(self, store: GraphStore, text: Union[str, bytes]) -> BotMetadata:
        """
        Decode `text` and replace the store's graph with it.

        Nothing is applied unless every step succeeds.

        Raises:
            ParseError, SchemaError: From decoding
            InvalidGraphError: If the embedded graph breaks an invariant
        """
        metadata, graph = self.decode(text)
        store.replace(graph)
        logger.info(
            f"Imported project {metadata.name!r} "
            f"({len(graph.nodes)} nodes, {len(graph.edges)} edges)"
        )
        return metadata


def _node_to_wire(node: IntentNode) -> WireNode:
    return WireNode(
        id=node.id,
        label=node.label,
        training_phrases=list(node.training_phrases),
        responses=list(node.responses),
        is_protected=node.is_protected,
        position=WirePosition(x=node.position.x, y=node.position.y),
    )


def _node_from_wire(node: WireNode) -> IntentNode:
    return IntentNode(
        id=node.id,
        label=node.label,
        training_phrases=list(node.training_phrases),
        responses=list(node.responses),
        is_protected=node.is_protected,
        position=Position(x=node.position.x, y=node.position.y),
    )
