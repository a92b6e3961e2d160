"""Stroke cleanup: drop tracking glitches before recognition.

A wand stroke captured from the IR tracker is interrupted by jumps (the
peak briefly locks onto another reflection) and gaps (frames where the
wand is lost). Both split the stream into segments; the longest segment
with enough points and travel is taken as the intended stroke.
"""

from __future__ import annotations

from typing import Optional, Sequence

from spell_engine.config import CleanerConfig
from spell_engine.stroke import SamplePoint, path_length


class StrokeCleaner:
    """Splits a raw stroke at discontinuities and keeps the best segment."""

    def __init__(self, config: Optional[CleanerConfig] = None):
        self.config = config or CleanerConfig()

    def split(self, points: Sequence[SamplePoint]) -> list[list[SamplePoint]]:
        """Split into runs separated by position jumps or time gaps."""
        if not points:
            return []

        jump = self.config.jump_threshold_px
        gap = self.config.gap_threshold_ms / 1000.0

        segments: list[list[SamplePoint]] = []
        current = [points[0]]
        for prev, cur in zip(points, points[1:]):
            if prev.distance_to(cur) > jump or (cur.t - prev.t) > gap:
                segments.append(current)
                current = []
            current.append(cur)
        segments.append(current)
        return segments

    def clean(self, points: Sequence[SamplePoint]) -> list[SamplePoint]:
        """Return the segment most likely to be the intentional stroke.

        Inputs shorter than ``min_input_points`` come back unchanged. Otherwise
        the result is never empty: when no segment qualifies, the segment with
        the greatest path length is used regardless of thresholds.
        """
        if len(points) < self.config.min_input_points:
            return list(points)

        segments = self.split(points)
        scored = [(path_length(seg), seg) for seg in segments]

        kept = [
            (length, seg) for length, seg in scored
            if length >= self.config.min_segment_length_px
            and len(seg) >= self.config.min_segment_points
        ]
        pool = kept or scored
        # max() keeps the earliest segment on ties
        return max(pool, key=lambda item: item[0])[1]


def clean_stroke(
    points: Sequence[SamplePoint],
    jump_threshold_px: float = 60.0,
    gap_threshold_ms: float = 120.0,
    min_segment_length_px: float = 120.0,
) -> list[SamplePoint]:
    """Functional shortcut for :meth:`StrokeCleaner.clean`."""
    cleaner = StrokeCleaner(CleanerConfig(
        jump_threshold_px=jump_threshold_px,
        gap_threshold_ms=gap_threshold_ms,
        min_segment_length_px=min_segment_length_px,
    ))
    return cleaner.clean(points)
