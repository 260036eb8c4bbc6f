"""
INTENTGRAPH INFRASTRUCTURE - System-Level Modules

This package contains infrastructure components:
- config: Editor configuration loaded from TOML
- event_bus: Publisher-subscriber notifications for graph changes
"""

from infrastructure.config import EditorConfig, load_editor_config
from infrastructure.event_bus import EventBus, EventType, GraphEvent

__all__ = [
    "EditorConfig",
    "load_editor_config",
    "EventBus",
    "EventType",
    "GraphEvent",
]
