"""Spell template library and JSON persistence.

Templates are stored raw (name + ordered points) so they can be reloaded
into a recognizer with different normalization settings. File format:

    [
      {"name": "Lumos", "points": [{"x": 50, "y": 20}, {"x": 35, "y": 35}, ...]},
      ...
    ]

Files written by older tools with ``Name``/``Points``/``X``/``Y`` keys load too.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Sequence

from spell_engine.errors import InvalidTemplateError

if TYPE_CHECKING:
    from spell_engine.recognizer import GestureRecognizer

logger = logging.getLogger("spell_engine.templates")


@dataclass
class TemplateRecord:
    """A raw, un-normalized template as persisted on disk."""
    name: str
    points: list[tuple[float, float]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "points": [{"x": x, "y": y} for x, y in self.points],
        }

    @classmethod
    def from_dict(cls, data: dict) -> TemplateRecord:
        name = data.get("name", data.get("Name", ""))
        raw = data.get("points", data.get("Points")) or []
        points = []
        for p in raw:
            if isinstance(p, dict):
                points.append((float(p.get("x", p.get("X"))), float(p.get("y", p.get("Y")))))
            else:
                points.append((float(p[0]), float(p[1])))
        return cls(name=name or "", points=points)


def densify(vertices: Sequence[tuple[float, float]], step: float = 4.0) -> list[tuple[float, float]]:
    """Insert evenly spaced points along each edge so no gap exceeds ``step``."""
    if len(vertices) < 2:
        return list(vertices)

    out = [tuple(vertices[0])]
    for (x0, y0), (x1, y1) in zip(vertices, vertices[1:]):
        n = max(1, int(math.ceil(math.hypot(x1 - x0, y1 - y0) / step)))
        for i in range(1, n + 1):
            t = i / n
            out.append((x0 + t * (x1 - x0), y0 + t * (y1 - y0)))
    return out


def _p(*xy: float) -> list[tuple[float, float]]:
    return [(xy[i], xy[i + 1]) for i in range(0, len(xy) - 1, 2)]


# Basic primitives on a 100x100 grid, y pointing down
LINE_RIGHT = _p(0, 50, 100, 50)
LINE_LEFT = _p(100, 50, 0, 50)
LINE_DOWN = _p(50, 0, 50, 100)
V_SHAPE = _p(10, 20, 50, 90, 90, 20)
M_SHAPE = _p(10, 85, 30, 20, 50, 85, 70, 20, 90, 85)
N_SHAPE = _p(15, 85, 15, 20, 85, 85, 85, 20)
Z_SHAPE = _p(15, 20, 85, 20, 15, 85, 85, 85)
S_SHAPE = _p(80, 20, 40, 10, 20, 30, 60, 50, 80, 70, 60, 90, 20, 80)
CIRCLE = _p(
    50, 10, 70, 15, 85, 30, 90, 50, 85, 70, 70, 85, 50, 90,
    30, 85, 15, 70, 10, 50, 15, 30, 30, 15, 50, 10,
)
SPIRAL = _p(
    55, 15, 70, 20, 80, 35, 80, 55, 70, 70, 55, 75, 40, 70,
    35, 55, 40, 40, 52, 35, 60, 42, 58, 55, 50, 60,
)
HOOK_UP = _p(30, 85, 30, 35, 50, 15, 70, 25)
HOOK_DOWN = _p(30, 15, 30, 65, 50, 85, 70, 75)
L_SHAPE = _p(25, 15, 25, 85, 85, 85)
ARROW_RIGHT = _p(10, 50, 80, 50, 65, 35, 80, 50, 65, 65)
ARROW_LEFT = _p(90, 50, 20, 50, 35, 35, 20, 50, 35, 65)
LOOP_LEFT = _p(70, 20, 40, 20, 20, 40, 20, 60, 40, 80, 70, 80, 85, 65, 75, 55, 55, 55)
CROSS = _p(50, 10, 50, 90, 50, 50, 10, 50, 90, 50)  # unistroke cross through the center

DEFAULT_SPELLS: dict[str, list[tuple[float, float]]] = {
    "Accio": LOOP_LEFT,
    "Aguamenti": _p(10, 30, 35, 20, 55, 25, 70, 40, 75, 60, 65, 75, 45, 80, 25, 70),
    "Alohomora": ARROW_LEFT,
    "Aparcium": _p(10, 50, 25, 35, 45, 30, 65, 40, 80, 55, 70, 70, 50, 75, 30, 65),
    "Arresto Momentum": M_SHAPE,
    "Ascendio": HOOK_UP,
    "Avis": _p(10, 55, 30, 40, 50, 45, 70, 40, 90, 55),
    "Confringo": Z_SHAPE,
    "Confundus": _p(15, 25, 85, 25, 55, 55, 85, 85),
    "Defodio": L_SHAPE,
    "Descendo": HOOK_DOWN,
    "Diffindo": N_SHAPE,
    "Duro": _p(20, 15, 20, 85, 55, 85, 80, 65, 55, 50, 20, 50),
    "Engorgio": V_SHAPE,
    "Episkey": CIRCLE,
    "Expecto Patronum": SPIRAL,
    "Expelliarmus": LINE_RIGHT,
    "Finite Incantatem": _p(20, 20, 80, 20, 80, 50, 50, 50, 50, 85),
    "Herbivicus": _p(50, 85, 50, 20, 70, 20, 70, 55),
    "Impedimenta": LINE_LEFT,
    "Incendio": _p(20, 85, 50, 20, 80, 85),
    "Locomotor": CROSS,
    "Lumos": _p(50, 20, 35, 35, 50, 50, 65, 35, 50, 20),
    "Meteolojinx": _p(25, 70, 35, 40, 55, 30, 75, 40, 85, 70),
    "Mimblewimble": _p(20, 65, 40, 35, 60, 35, 80, 65, 60, 75, 40, 75),
    "Oppugno": _p(70, 15, 30, 85, 70, 85),
    "Orchideous": _p(25, 25, 75, 75, 25, 75, 75, 25),
    "Petrificus Totalus": ARROW_RIGHT,
    "Protego": V_SHAPE,
    "Reducio": _p(15, 35, 50, 20, 85, 35, 65, 55, 50, 40, 35, 55),
    "Reparo": _p(20, 85, 20, 20, 70, 20, 70, 50, 20, 50, 70, 85),
    "Revelio": _p(50, 20, 50, 80, 65, 80, 80, 65, 65, 50),
    "Scourgify": S_SHAPE,
    "Serpensortia": _p(20, 20, 60, 20, 80, 35, 60, 50, 40, 65, 60, 80),
    "Silencio": _p(80, 20, 20, 20, 20, 80, 80, 80, 80, 50),
    "Specialis Revelio": SPIRAL,
    "Stupefy": LINE_DOWN,
    "Tarantallegra": _p(20, 60, 35, 40, 50, 60, 65, 40, 80, 60),
    "Wingardium Leviosa": _p(20, 60, 35, 40, 50, 60, 65, 40, 80, 60, 90, 75),
}


def default_templates(step: float = 4.0) -> list[TemplateRecord]:
    """The starter spell set, densified so every entry is registrable."""
    return [TemplateRecord(name, densify(pts, step)) for name, pts in DEFAULT_SPELLS.items()]


def load_into(recognizer: GestureRecognizer, records: Iterable[TemplateRecord]) -> int:
    """Register records with a recognizer, skipping malformed ones. Returns count added."""
    added = 0
    for record in records:
        try:
            recognizer.add_template(record.name, record.points)
        except InvalidTemplateError as e:
            logger.warning("Skipping template %r: %s", record.name, e)
            continue
        added += 1
    logger.info("Recognizer ready. TemplateCount=%d", recognizer.template_count)
    return added


def records_from(recognizer: GestureRecognizer) -> list[TemplateRecord]:
    """Raw records for every template currently in a recognizer."""
    return [TemplateRecord(t.name, list(t.source)) for t in recognizer.templates]


class TemplateStore:
    """Reads and writes template records as a JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load_or_empty(self) -> list[TemplateRecord]:
        """Load records; a missing or unreadable file yields an empty list."""
        if not self.path.exists():
            return []
        try:
            with open(self.path) as f:
                data = json.load(f)
            if isinstance(data, dict):
                data = data.get("templates", [])
            return [TemplateRecord.from_dict(entry) for entry in data]
        except (OSError, ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning("Could not read templates from %s: %s", self.path, e)
            return []

    def load_or_defaults(self) -> list[TemplateRecord]:
        """Stored records, or the default spell set when none are stored."""
        records = self.load_or_empty()
        if not records:
            logger.info("No stored templates in %s, using default spell set", self.path)
            return default_templates()
        logger.info("Templates loaded: %d", len(records))
        return records

    def save(self, records: Iterable[TemplateRecord]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump([r.to_dict() for r in records], f, indent=2)
        logger.info("Templates saved to: %s", self.path)


def build_recognizer(records: Iterable[TemplateRecord], config=None) -> GestureRecognizer:
    from spell_engine.recognizer import GestureRecognizer

    recognizer = GestureRecognizer(config)
    load_into(recognizer, records)
    return recognizer
