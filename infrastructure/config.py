"""
INTENTGRAPH CONFIG - Editor Configuration

Configuration is loaded once from config/intentgraph.toml and handed to the
editor as a plain dataclass. Components never read the TOML file themselves.

Usage:
    from infrastructure.config import load_editor_config

    config = load_editor_config()          # defaults + TOML overrides
    config = load_editor_config(path)      # explicit file
    config = EditorConfig.from_dict({"history": {"debounce_seconds": 0.5}})
"""
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import logging
import tomllib
import warnings


logger = logging.getLogger("intentgraph.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "intentgraph.toml"


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class EditorConfig:
    """Tunables for the editing core."""
    debounce_seconds: float = 1.0       # Pause length that closes an undo step
    max_history: int = 50               # Undo entries kept, baseline included
    duplicate_offset: Tuple[float, float] = (50.0, 50.0)
    placement_origin: Tuple[float, float] = (100.0, 100.0)
    placement_span: Tuple[float, float] = (400.0, 300.0)
    schema_version: str = "1.0"
    default_label: str = "New Intent"
    copy_suffix: str = " (Copy)"
    metadata: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.debounce_seconds < 0:
            raise ValueError(f"debounce_seconds must be >= 0, got {self.debounce_seconds}")
        if self.max_history < 1:
            raise ValueError(f"max_history must be >= 1, got {self.max_history}")
        self.duplicate_offset = _pair(self.duplicate_offset, "duplicate_offset")
        self.placement_origin = _pair(self.placement_origin, "placement_origin")
        self.placement_span = _pair(self.placement_span, "placement_span")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "EditorConfig":
        """
        Build a config from the TOML layout.

        Sections ([history], [nodes], [export], [metadata]) are flattened;
        unknown keys are ignored with a warning.
        """
        known = {f.name for f in fields(cls)}
        flat: Dict[str, Any] = {}

        for section, values in config_dict.items():
            if section == "metadata":
                flat["metadata"] = {str(k): str(v) for k, v in values.items()}
                continue
            if not isinstance(values, dict):
                values = {section: values}
            for key, value in values.items():
                if key in known:
                    flat[key] = value
                else:
                    warnings.warn(f"Ignoring unknown config key: {section}.{key}")

        return cls(**flat)


def _pair(value: Any, name: str) -> Tuple[float, float]:
    try:
        x, y = value
        return (float(x), float(y))
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a pair of numbers, got {value!r}")


# =============================================================================
# LOADING
# =============================================================================

def load_toml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load raw configuration sections from TOML.

    Returns:
        Dict with all configuration sections, or {} if the file is unreadable
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Failed to load config from TOML: {e}")
        return {}


def load_editor_config(path: Optional[Path] = None) -> EditorConfig:
    """Load the editor config, falling back to defaults for missing values."""
    config = EditorConfig.from_dict(load_toml_config(path))
    logger.debug(f"Loaded editor config: {config}")
    return config
