"""Wand tip location from infrared + depth frames.

The wand tip is a retro-reflector: in the IR image it is the brightest
spot, and in the depth image it often shows up as a "hole" (depth 0)
because the sensor saturates there. Locating a frame therefore runs:

    IR peak -> weighted centroid -> depth lookup (hole filled from the
    neighborhood) -> depth-to-color mapping -> aspect-correct canvas point

Every stage can fail; failures return None and count as a missing point.

Usage:
    locator = FrameLocator(depth_to_color=sensor_mapper)
    fix = locator.track(ir, depth, canvas_size=(1280, 720), source_size=(1920, 1080))
    if fix is not None:
        draw_cursor(fix.canvas_x, fix.canvas_y)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from spell_engine.config import LocatorConfig

logger = logging.getLogger("spell_engine.locator")

# (depth_x, depth_y, depth_mm) -> (color_x, color_y); non-finite output = unmappable
DepthToColor = Callable[[float, float, int], tuple[float, float]]


def identity_depth_to_color(x: float, y: float, depth_mm: int) -> tuple[float, float]:
    """Mapping for sensors whose color and depth images share geometry."""
    return float(x), float(y)


@dataclass(frozen=True)
class WandFix:
    """A fully resolved wand position for one frame."""
    ir_x: int
    ir_y: int
    depth_mm: int
    color_x: float
    color_y: float
    canvas_x: float
    canvas_y: float
    depth_estimated: bool = False


def _box_sum(values: np.ndarray, radius: int) -> np.ndarray:
    """Sum over a (2r+1)^2 window clipped at the borders, via an integral image."""
    h, w = values.shape
    integral = np.zeros((h + 1, w + 1), dtype=np.int64)
    integral[1:, 1:] = values.astype(np.int64).cumsum(axis=0).cumsum(axis=1)

    ys = np.arange(h)
    xs = np.arange(w)
    y0 = np.clip(ys - radius, 0, h)[:, None]
    y1 = np.clip(ys + radius + 1, 0, h)[:, None]
    x0 = np.clip(xs - radius, 0, w)[None, :]
    x1 = np.clip(xs + radius + 1, 0, w)[None, :]
    return integral[y1, x1] - integral[y0, x1] - integral[y1, x0] + integral[y0, x0]


def map_to_canvas(
    color_x: float,
    color_y: float,
    canvas_size: tuple[float, float],
    source_size: tuple[float, float],
    min_canvas_px: float = 10.0,
) -> Optional[tuple[float, float]]:
    """Map a color-image pixel onto a canvas showing that image aspect-fit.

    The image is scaled uniformly to fit and centered; points falling in the
    letterbox bars outside the displayed image are rejected.
    """
    cw, ch = canvas_size
    sw, sh = source_size
    if cw < min_canvas_px or ch < min_canvas_px or sw <= 0 or sh <= 0:
        return None

    scale = min(cw / sw, ch / sh)
    offset_x = (cw - sw * scale) / 2.0
    offset_y = (ch - sh * scale) / 2.0

    canvas_x = color_x * scale + offset_x
    canvas_y = color_y * scale + offset_y

    if canvas_x < offset_x or canvas_y < offset_y:
        return None
    if canvas_x > offset_x + sw * scale or canvas_y > offset_y + sh * scale:
        return None
    return canvas_x, canvas_y


class FrameLocator:
    """Finds the wand tip in a frame pair and resolves it to display coordinates.

    IR and depth frames are (H, W) uint16 arrays with identical geometry.
    """

    def __init__(
        self,
        config: Optional[LocatorConfig] = None,
        depth_to_color: Optional[DepthToColor] = None,
    ):
        self.config = config or LocatorConfig()
        self.depth_to_color = depth_to_color or identity_depth_to_color
        self._last_pixel: Optional[tuple[int, int]] = None
        self.last_miss: Optional[str] = None

    @property
    def threshold(self) -> int:
        return self.config.ir_threshold

    @threshold.setter
    def threshold(self, value: int):
        self.config.ir_threshold = int(value)

    def find_peak(self, ir: np.ndarray) -> Optional[tuple[int, int]]:
        """Brightest-spot centroid in the IR image, or None."""
        cfg = self.config
        h, w = ir.shape
        if ir.size == 0:
            return None

        peak_idx = int(np.argmax(ir))
        peak_val = int(ir.flat[peak_idx])
        if peak_val < max(cfg.ir_threshold, cfg.peak_floor):
            return None

        peak_y, peak_x = divmod(peak_idx, w)
        r = cfg.centroid_radius
        y0, y1 = max(0, peak_y - r), min(h - 1, peak_y + r)
        x0, x1 = max(0, peak_x - r), min(w - 1, peak_x + r)

        window = ir[y0:y1 + 1, x0:x1 + 1].astype(np.int64)
        mask = window >= cfg.ir_threshold
        hits = int(mask.sum())
        weights = np.where(mask, window, 0)
        total = int(weights.sum())
        if total <= 0 or hits < cfg.min_centroid_hits:
            return None

        yy, xx = np.mgrid[y0:y1 + 1, x0:x1 + 1]
        cx = float((xx * weights).sum()) / total
        cy = float((yy * weights).sum()) / total

        out_x, out_y = int(round(cx)), int(round(cy))
        if not (0 <= out_x < w and 0 <= out_y < h):
            return None
        return out_x, out_y

    def estimate_depth(self, depth: np.ndarray, x: int, y: int) -> Optional[int]:
        """Average of valid depth samples around (x, y); fills IR-induced holes."""
        cfg = self.config
        h, w = depth.shape
        r = cfg.depth_radius
        window = depth[max(0, y - r):min(h - 1, y + r) + 1, max(0, x - r):min(w - 1, x + r) + 1]
        valid = window[(window >= cfg.min_depth_mm) & (window <= cfg.max_depth_mm)]
        if valid.size < cfg.min_depth_samples:
            return None
        return int(valid.astype(np.int64).sum() // valid.size)

    def resolve_depth(self, depth: np.ndarray, x: int, y: int) -> tuple[Optional[int], bool]:
        """Depth at (x, y). Returns (depth_mm or None, estimated)."""
        h, w = depth.shape
        if not (0 <= x < w and 0 <= y < h):
            return None, False
        value = int(depth[y, x])
        if value != 0:
            return value, False
        return self.estimate_depth(depth, x, y), True

    def locate(self, ir: np.ndarray, depth: np.ndarray) -> Optional[tuple[int, int, int]]:
        """IR peak plus its depth: (ir_x, ir_y, depth_mm), or None."""
        located = self._locate(ir, depth)
        if located is None:
            return None
        return located[0], located[1], located[2]

    def _locate(self, ir: np.ndarray, depth: np.ndarray) -> Optional[tuple[int, int, int, bool]]:
        if ir.shape != depth.shape:
            logger.warning("IR %s and depth %s frames differ in shape", ir.shape, depth.shape)
            self.last_miss = "shape"
            return None

        peak = self.find_peak(ir)
        if peak is None:
            if self.config.depth_fallback:
                hole = self.find_depth_hole(depth)
                if hole is not None:
                    return hole[0], hole[1], hole[2], True
            self.last_miss = "peak"
            return None

        depth_mm, estimated = self.resolve_depth(depth, *peak)
        if depth_mm is None:
            self.last_miss = "depth"
            return None
        return peak[0], peak[1], depth_mm, estimated

    def map_to_color(self, x: float, y: float, depth_mm: int) -> Optional[tuple[float, float]]:
        """Delegate to the sensor mapping; reject infinite/NaN results."""
        color_x, color_y = self.depth_to_color(x, y, depth_mm)
        if not (math.isfinite(color_x) and math.isfinite(color_y)):
            return None
        return float(color_x), float(color_y)

    def map_to_canvas(
        self,
        color_x: float,
        color_y: float,
        canvas_size: tuple[float, float],
        source_size: tuple[float, float],
    ) -> Optional[tuple[float, float]]:
        return map_to_canvas(color_x, color_y, canvas_size, source_size, self.config.min_canvas_px)

    def track(
        self,
        ir: np.ndarray,
        depth: np.ndarray,
        canvas_size: tuple[float, float],
        source_size: tuple[float, float],
    ) -> Optional[WandFix]:
        """Run every stage for one frame. None means 'point missing'."""
        self.last_miss = None
        located = self._locate(ir, depth)
        if located is None:
            logger.debug("Point unresolved at stage: %s", self.last_miss)
            return None
        ir_x, ir_y, depth_mm, estimated = located

        color = self.map_to_color(ir_x, ir_y, depth_mm)
        if color is None:
            self.last_miss = "color"
            logger.debug("Point unresolved at stage: color")
            return None

        canvas = self.map_to_canvas(color[0], color[1], canvas_size, source_size)
        if canvas is None:
            self.last_miss = "canvas"
            logger.debug("Point unresolved at stage: canvas")
            return None

        self._last_pixel = (ir_x, ir_y)
        return WandFix(
            ir_x=ir_x,
            ir_y=ir_y,
            depth_mm=depth_mm,
            color_x=color[0],
            color_y=color[1],
            canvas_x=canvas[0],
            canvas_y=canvas[1],
            depth_estimated=estimated,
        )

    # --- depth-only fallback ---

    def find_depth_hole(self, depth: np.ndarray) -> Optional[tuple[int, int, int]]:
        """Locate the wand from depth alone: (x, y, depth_mm), or None.

        Prefers a zero-depth pixel surrounded by valid depth near the last
        known position (or the image center), then the nearest valid depth
        near the last position, then the nearest valid depth anywhere.
        """
        cfg = self.config
        h, w = depth.shape
        valid = (depth >= cfg.min_depth_mm) & (depth <= cfg.max_depth_mm)

        if self._last_pixel is not None:
            center, radius = self._last_pixel, cfg.hole_search_radius
        else:
            center, radius = (w // 2, h // 2), cfg.hole_center_radius

        hole = self._find_hole_near(depth, valid, center, radius)
        if hole is not None:
            return hole

        if self._last_pixel is not None:
            nearest = self._nearest_valid(depth, valid, self._last_pixel, cfg.hole_search_radius)
            if nearest is not None:
                return nearest

        return self._nearest_valid(depth, valid, None, None)

    def _find_hole_near(
        self,
        depth: np.ndarray,
        valid: np.ndarray,
        center: tuple[int, int],
        radius: int,
    ) -> Optional[tuple[int, int, int]]:
        cfg = self.config
        h, w = depth.shape
        cx, cy = center
        y0, y1 = max(0, cy - radius), min(h - 1, cy + radius)
        x0, x1 = max(0, cx - radius), min(w - 1, cx + radius)

        counts = _box_sum(valid, cfg.depth_radius)
        sums = _box_sum(np.where(valid, depth, 0), cfg.depth_radius)

        region = np.zeros_like(valid)
        region[y0:y1 + 1, x0:x1 + 1] = True
        candidates = region & (depth == 0) & (counts >= cfg.hole_min_valid_neighbors)
        if not candidates.any():
            return None

        yy, xx = np.nonzero(candidates)
        dist2 = (xx - cx) ** 2 + (yy - cy) ** 2
        scores = counts[yy, xx] * 1000 - dist2
        best = int(np.argmax(scores))
        bx, by = int(xx[best]), int(yy[best])
        avg = int(sums[by, bx] // counts[by, bx])
        return bx, by, avg if avg > 0 else cfg.hole_default_depth_mm

    @staticmethod
    def _nearest_valid(
        depth: np.ndarray,
        valid: np.ndarray,
        center: Optional[tuple[int, int]],
        radius: Optional[int],
    ) -> Optional[tuple[int, int, int]]:
        """Closest-to-sensor valid depth pixel, optionally within a window."""
        h, w = depth.shape
        if center is not None and radius is not None:
            cx, cy = center
            y0, x0 = max(0, cy - radius), max(0, cx - radius)
            sub_depth = depth[y0:min(h - 1, cy + radius) + 1, x0:min(w - 1, cx + radius) + 1]
            sub_valid = valid[y0:min(h - 1, cy + radius) + 1, x0:min(w - 1, cx + radius) + 1]
        else:
            y0 = x0 = 0
            sub_depth, sub_valid = depth, valid

        if not sub_valid.any():
            return None
        masked = np.where(sub_valid, sub_depth.astype(np.int64), np.iinfo(np.int64).max)
        idx = int(np.argmin(masked))
        sy, sx = divmod(idx, sub_depth.shape[1])
        return x0 + sx, y0 + sy, int(sub_depth[sy, sx])

    def reset(self):
        """Forget the last located pixel (stroke buffers were cleared)."""
        self._last_pixel = None
        self.last_miss = None
