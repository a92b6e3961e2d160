"""Configuration for every stage of the wand pipeline.

Each component takes its own dataclass at construction; the defaults are
the tuned values for a Kinect v2 style IR/depth sensor and a full-HD
display. ``SpellEngineConfig`` bundles them and round-trips through YAML:

    locator:
      ir_threshold: 22000
    capture:
      max_spell_duration_s: 3.5
    recognizer:
      min_score: 0.75
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from spell_engine.errors import ConfigError

logger = logging.getLogger("spell_engine.config")


@dataclass
class LocatorConfig:
    """IR peak search, depth hole filling and display mapping."""
    ir_threshold: int = 20000
    peak_floor: int = 25000
    centroid_radius: int = 6
    min_centroid_hits: int = 4
    depth_radius: int = 4
    min_depth_mm: int = 400
    max_depth_mm: int = 4500
    min_depth_samples: int = 6
    # Depth-only fallback when the IR search finds nothing
    depth_fallback: bool = False
    hole_search_radius: int = 90
    hole_center_radius: int = 140
    hole_min_valid_neighbors: int = 12
    hole_default_depth_mm: int = 1000
    min_canvas_px: float = 10.0


@dataclass
class CleanerConfig:
    jump_threshold_px: float = 60.0
    gap_threshold_ms: float = 120.0
    min_segment_length_px: float = 120.0
    min_segment_points: int = 10
    min_input_points: int = 8


@dataclass
class RecognizerConfig:
    num_points: int = 96
    square_size: float = 250.0
    angle_range_deg: float = 45.0
    angle_precision_deg: float = 2.0
    min_score: float = 0.7
    min_points: int = 10
    min_template_points: int = 5
    # None = fully rotation invariant
    orientation_limit_deg: Optional[float] = 45.0


@dataclass
class CaptureConfig:
    """Timing and geometry policy for stroke capture (pixels, seconds)."""
    min_movement_px: float = 20.0
    stationary_timeout_s: float = 0.7
    stationary_min_points: int = 8
    hold_min_length_px: float = 60.0
    hold_min_points: int = 12
    max_stroke_length_px: float = 1800.0
    max_spell_duration_s: float = 3.0
    early_commit_min_points: int = 40
    closed_shape_distance_px: float = 35.0
    closed_shape_min_length_px: float = 250.0
    safety_commit_s: float = 2.5
    idle_clear_s: float = 1.5
    missing_frames_to_end: int = 14
    missing_end_min_points: int = 10
    min_commit_points: int = 10
    min_record_points: int = 30
    min_record_duration_s: float = 0.4


@dataclass
class DisplayConfig:
    """Canvas the wand cursor is drawn on and the color image shown under it."""
    canvas_width: float = 1920.0
    canvas_height: float = 1080.0
    source_width: float = 1920.0
    source_height: float = 1080.0

    @property
    def canvas_size(self) -> tuple[float, float]:
        return (self.canvas_width, self.canvas_height)

    @property
    def source_size(self) -> tuple[float, float]:
        return (self.source_width, self.source_height)


_SECTIONS = {
    "locator": LocatorConfig,
    "cleaner": CleanerConfig,
    "recognizer": RecognizerConfig,
    "capture": CaptureConfig,
    "display": DisplayConfig,
}


def _build_section(cls, name: str, data: Any):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(cls)}
    for key in data:
        if key not in known:
            logger.warning("Ignoring unknown %s setting: %s", name, key)
    return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class SpellEngineConfig:
    locator: LocatorConfig = field(default_factory=LocatorConfig)
    cleaner: CleanerConfig = field(default_factory=CleanerConfig)
    recognizer: RecognizerConfig = field(default_factory=RecognizerConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    templates_path: Optional[str] = None
    log_level: str = "info"

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> SpellEngineConfig:
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be a mapping")

        sections = {name: _build_section(sc, name, data.get(name)) for name, sc in _SECTIONS.items()}
        for key in data:
            if key not in _SECTIONS and key not in ("templates_path", "log_level"):
                logger.warning("Ignoring unknown config key: %s", key)

        return cls(
            **sections,
            templates_path=data.get("templates_path"),
            log_level=data.get("log_level", "info"),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> SpellEngineConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        return asdict(self)

    def to_yaml(self, path: str | Path):
        """Save the full effective configuration to YAML."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
