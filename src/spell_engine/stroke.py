"""Timestamped pointer samples and the path measures used on them."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class SamplePoint:
    """One tracked wand position in canvas pixels at time ``t`` (seconds)."""
    x: float
    y: float
    t: float = 0.0

    def distance_to(self, other: SamplePoint) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


def path_length(points: Sequence[SamplePoint]) -> float:
    """Sum of segment lengths along the polyline."""
    total = 0.0
    for i in range(1, len(points)):
        total += points[i - 1].distance_to(points[i])
    return total
