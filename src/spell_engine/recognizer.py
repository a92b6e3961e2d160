"""Unistroke spell recognition ($1 recognizer).

Candidate strokes and templates go through the same normalization:

1. resample to N points evenly spaced along the path
2. rotate about the centroid so the first point sits on a fixed ray
3. scale uniformly so the larger bounding-box side is ``square_size``
4. translate the centroid to the origin

Matching is the mean pointwise distance after a golden-section search
over ±45° of extra rotation. The winning distance becomes a 0–1 score
relative to the half-diagonal of the reference square.

Usage:
    recognizer = GestureRecognizer()
    recognizer.add_template("lumos", points)
    result = recognizer.recognize(stroke)
    if result.success:
        print(result.name, result.score)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np

from spell_engine.config import RecognizerConfig
from spell_engine.errors import InvalidTemplateError, Reason

logger = logging.getLogger("spell_engine.recognizer")

# Golden ratio conjugate used by the rotation search
PHI = 0.5 * (-1.0 + math.sqrt(5.0))


@dataclass
class RecognitionResult:
    """Outcome of one recognition attempt.

    ``name`` and ``score`` hold the best guess even when ``success`` is
    False, so rejected casts can still be shown for diagnostics.
    """
    success: bool
    name: str = ""
    score: float = 0.0
    reason: str = ""
    code: Optional[Reason] = None


@dataclass
class Template:
    """A named template in normalized form (always ``num_points`` long)."""
    name: str
    points: np.ndarray  # shape (N, 2)
    indicative_angle: float = 0.0  # radians removed by rotate-to-zero
    source: list[tuple[float, float]] = field(default_factory=list)


def to_array(points) -> np.ndarray:
    """Coerce SamplePoints, (x, y) pairs or an array into an (N, 2) float array."""
    if isinstance(points, np.ndarray):
        return points.astype(np.float64).reshape(-1, 2)
    pts = list(points)
    if pts and hasattr(pts[0], "x"):
        return np.array([[p.x, p.y] for p in pts], dtype=np.float64).reshape(-1, 2)
    return np.array(pts, dtype=np.float64).reshape(-1, 2)


def path_length(points: np.ndarray) -> float:
    if len(points) < 2:
        return 0.0
    return float(np.sum(np.linalg.norm(np.diff(points, axis=0), axis=1)))


def centroid(points: np.ndarray) -> np.ndarray:
    return points.mean(axis=0)


def resample(points, n_points: int = 96) -> np.ndarray:
    """Resample a path to exactly ``n_points`` evenly spaced points.

    Works on a fresh output array; the input is never modified. A path with
    (near) zero length yields ``n_points`` copies of its first point.
    """
    pts = to_array(points)
    if len(pts) == 0:
        raise ValueError("Cannot resample an empty path")

    diffs = np.diff(pts, axis=0)
    seg_lengths = np.linalg.norm(diffs, axis=1)
    cum_length = np.concatenate([[0.0], np.cumsum(seg_lengths)])
    total = cum_length[-1]

    if len(pts) < 2 or total < 1e-6:
        return np.tile(pts[0], (n_points, 1))

    # Interpolate at evenly spaced arc lengths
    target_lengths = np.linspace(0.0, total, n_points)
    resampled = np.empty((n_points, 2), dtype=np.float64)

    for i, target in enumerate(target_lengths):
        idx = np.searchsorted(cum_length, target, side="right") - 1
        idx = min(max(idx, 0), len(pts) - 2)
        seg_len = seg_lengths[idx]
        t_param = (target - cum_length[idx]) / seg_len if seg_len > 1e-12 else 0.0
        resampled[i] = pts[idx] + t_param * diffs[idx]

    resampled[-1] = pts[-1]
    return resampled


def indicative_angle(points: np.ndarray) -> float:
    """Angle of the ray from the first point to the centroid."""
    c = centroid(points)
    return math.atan2(c[1] - points[0, 1], c[0] - points[0, 0])


def rotate_by(points: np.ndarray, theta: float) -> np.ndarray:
    """Rotate about the centroid by ``theta`` radians."""
    c = centroid(points)
    cos, sin = math.cos(theta), math.sin(theta)
    rot = np.array([[cos, -sin], [sin, cos]])
    return (points - c) @ rot.T + c


def rotate_to_zero(points: np.ndarray) -> tuple[np.ndarray, float]:
    """Rotate so the first point lies on the reference ray. Returns (points, angle)."""
    theta = indicative_angle(points)
    return rotate_by(points, -theta), theta


def scale_to_square(points: np.ndarray, size: float = 250.0) -> np.ndarray:
    """Scale uniformly so the larger bounding-box side equals ``size``."""
    span = points.max(axis=0) - points.min(axis=0)
    scale = float(span.max())
    if scale < 1e-6:
        scale = 1.0
    return points * (size / scale)


def translate_to_origin(points: np.ndarray) -> np.ndarray:
    return points - centroid(points)


def normalize_with_angle(points, n_points: int = 96, size: float = 250.0) -> tuple[np.ndarray, float]:
    pts = resample(points, n_points)
    pts, theta = rotate_to_zero(pts)
    pts = scale_to_square(pts, size)
    return translate_to_origin(pts), theta


def normalize(points, n_points: int = 96, size: float = 250.0) -> np.ndarray:
    """Full $1 normalization: resample, rotate to zero, scale, center."""
    return normalize_with_angle(points, n_points, size)[0]


def path_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Mean distance between corresponding points."""
    n = min(len(a), len(b))
    return float(np.mean(np.linalg.norm(a[:n] - b[:n], axis=1)))


def distance_at_angle(points: np.ndarray, template: np.ndarray, theta: float) -> float:
    return path_distance(rotate_by(points, theta), template)


def distance_at_best_angle(
    points: np.ndarray,
    template: np.ndarray,
    a: float,
    b: float,
    threshold: float,
) -> float:
    """Golden-section search for the rotation in [a, b] minimizing distance."""
    x1 = PHI * a + (1 - PHI) * b
    f1 = distance_at_angle(points, template, x1)
    x2 = (1 - PHI) * a + PHI * b
    f2 = distance_at_angle(points, template, x2)

    while abs(b - a) > threshold:
        if f1 < f2:
            b, x2, f2 = x2, x1, f1
            x1 = PHI * a + (1 - PHI) * b
            f1 = distance_at_angle(points, template, x1)
        else:
            a, x1, f1 = x1, x2, f2
            x2 = (1 - PHI) * a + PHI * b
            f2 = distance_at_angle(points, template, x2)

    return min(f1, f2)


def _angle_delta(a: float, b: float) -> float:
    d = a - b
    return math.atan2(math.sin(d), math.cos(d))


class GestureRecognizer:
    """Holds normalized templates and scores candidate strokes against them."""

    def __init__(self, config: Optional[RecognizerConfig] = None):
        self.config = config or RecognizerConfig()
        self._templates: list[Template] = []

    @property
    def min_score(self) -> float:
        return self.config.min_score

    @min_score.setter
    def min_score(self, value: float):
        self.config.min_score = value

    @property
    def half_diagonal(self) -> float:
        size = self.config.square_size
        return 0.5 * math.sqrt(2 * size * size)

    def normalize(self, points) -> tuple[np.ndarray, float]:
        return normalize_with_angle(points, self.config.num_points, self.config.square_size)

    def add_template(self, name: str, points: Iterable, replace: bool = False) -> Template:
        """Normalize and register a template.

        Raises:
            InvalidTemplateError: blank name or fewer than ``min_template_points``.
        """
        name = (name or "").strip()
        if not name:
            raise InvalidTemplateError("Template name required")

        pts = to_array(points)
        if len(pts) < self.config.min_template_points:
            raise InvalidTemplateError(
                f"Template '{name}' has {len(pts)} points, "
                f"need at least {self.config.min_template_points}"
            )

        if replace:
            self.remove_template(name)

        norm, theta = self.normalize(pts)
        template = Template(
            name=name,
            points=norm,
            indicative_angle=theta,
            source=[(float(x), float(y)) for x, y in pts],
        )
        self._templates.append(template)
        return template

    def remove_template(self, name: str) -> int:
        """Remove every template with this name (case-insensitive)."""
        key = name.strip().lower()
        before = len(self._templates)
        self._templates = [t for t in self._templates if t.name.lower() != key]
        return before - len(self._templates)

    def clear_templates(self):
        self._templates.clear()

    def _score(self, distance: float) -> float:
        return min(1.0, max(0.0, 1.0 - distance / self.half_diagonal))

    def recognize(self, points) -> RecognitionResult:
        """Score a stroke against every template. Never raises for a
        well-formed point list; the worst case is a low-confidence result."""
        pts = to_array(points)
        if len(pts) < self.config.min_points:
            return RecognitionResult(False, "", 0.0, "Too few points", Reason.TOO_FEW_POINTS)
        if not self._templates:
            return RecognitionResult(False, "", 0.0, "No templates loaded", Reason.NO_TEMPLATES)

        candidate, theta = self.normalize(pts)
        angle_range = math.radians(self.config.angle_range_deg)
        precision = math.radians(self.config.angle_precision_deg)
        limit = self.config.orientation_limit_deg
        limit_rad = math.radians(limit) + 1e-6 if limit is not None else None

        best_distance = math.inf
        best_name = ""
        # best ignoring orientation, reported when nothing passes the gate
        any_distance = math.inf
        any_name = ""
        for template in self._templates:
            d = distance_at_best_angle(candidate, template.points, -angle_range, angle_range, precision)
            if d < any_distance:
                any_distance = d
                any_name = template.name
            if limit_rad is not None and abs(_angle_delta(theta, template.indicative_angle)) > limit_rad:
                continue
            if d < best_distance:
                best_distance = d
                best_name = template.name

        if not best_name:
            score = self._score(any_distance)
            logger.debug("No template in orientation range: nearest=%s score=%.3f", any_name, score)
            return RecognitionResult(
                False, any_name, score,
                f"No template within {limit:g} degrees of stroke orientation",
                Reason.LOW_CONFIDENCE,
            )

        score = self._score(best_distance)
        if score < self.config.min_score:
            logger.debug("Low confidence: best=%s score=%.3f", best_name, score)
            return RecognitionResult(
                False, best_name, score,
                f"Low confidence (score={score:.2f})",
                Reason.LOW_CONFIDENCE,
            )

        return RecognitionResult(True, best_name, score, "")

    @property
    def templates(self) -> list[Template]:
        return list(self._templates)

    @property
    def template_count(self) -> int:
        return len(self._templates)

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._templates]

    def __len__(self) -> int:
        return len(self._templates)

    @classmethod
    def with_defaults(cls, config: Optional[RecognizerConfig] = None) -> GestureRecognizer:
        """Create a recognizer loaded with the built-in spell library."""
        from spell_engine.templates import default_templates, load_into

        recognizer = cls(config)
        load_into(recognizer, default_templates())
        return recognizer
