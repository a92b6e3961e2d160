"""Tests for wand tip location from IR + depth frames."""

import numpy as np
import pytest

from spell_engine.config import LocatorConfig
from spell_engine.locator import FrameLocator, WandFix, identity_depth_to_color, map_to_canvas

W, H = 160, 120


def blank_frames(depth_mm=1500):
    ir = np.zeros((H, W), dtype=np.uint16)
    depth = np.full((H, W), depth_mm, dtype=np.uint16)
    return ir, depth


def blob(ir, x, y, value=30000, r=1):
    ir[y - r:y + r + 1, x - r:x + r + 1] = value
    return ir


class TestFindPeak:
    def test_blob_center(self):
        ir, _ = blank_frames()
        blob(ir, 40, 30)
        assert FrameLocator().find_peak(ir) == (40, 30)

    def test_dark_frame(self):
        ir, _ = blank_frames()
        assert FrameLocator().find_peak(ir) is None

    def test_peak_floor_applies_below_threshold(self):
        ir, _ = blank_frames()
        blob(ir, 40, 30, value=24000)
        locator = FrameLocator(LocatorConfig(ir_threshold=20000, peak_floor=25000))
        assert locator.find_peak(ir) is None

    def test_threshold_above_floor(self):
        ir, _ = blank_frames()
        blob(ir, 40, 30, value=26000)
        locator = FrameLocator()
        assert locator.find_peak(ir) == (40, 30)
        locator.threshold = 28000
        assert locator.find_peak(ir) is None

    def test_single_pixel_rejected(self):
        ir, _ = blank_frames()
        ir[30, 40] = 60000
        assert FrameLocator().find_peak(ir) is None

    def test_four_hits_accepted(self):
        ir, _ = blank_frames()
        ir[30, 40] = ir[30, 41] = ir[31, 40] = ir[31, 41] = 30000
        assert FrameLocator().find_peak(ir) is not None

    def test_weighted_centroid(self):
        ir, _ = blank_frames()
        ir[10, 10] = ir[10, 11] = ir[10, 12] = ir[11, 11] = 30000
        # cx = 11, cy = 10.25
        assert FrameLocator().find_peak(ir) == (11, 10)

    def test_centroid_pulls_toward_brighter_pixels(self):
        ir, _ = blank_frames()
        ir[50, 50:52] = [30000, 60000]
        ir[51, 50:52] = [30000, 60000]
        x, y = FrameLocator().find_peak(ir)
        assert x == 51  # cx = 50.67; an unweighted mean would give 50.5
        assert y in (50, 51)

    def test_peak_near_border(self):
        ir, _ = blank_frames()
        blob(ir, 1, 1)
        assert FrameLocator().find_peak(ir) == (1, 1)


class TestDepth:
    def test_direct_depth(self):
        _, depth = blank_frames(1500)
        assert FrameLocator().resolve_depth(depth, 40, 30) == (1500, False)

    def test_hole_is_filled_from_neighbors(self):
        _, depth = blank_frames(1500)
        depth[29:32, 39:42] = 0
        mm, estimated = FrameLocator().resolve_depth(depth, 40, 30)
        assert mm == 1500
        assert estimated

    def test_hole_fill_uses_integer_mean(self):
        _, depth = blank_frames(1000)
        depth[30, 40] = 0
        depth[30, 42] = 1003
        assert FrameLocator().estimate_depth(depth, 40, 30) == 1000

    def test_out_of_range_neighbors_ignored(self):
        _, depth = blank_frames(300)  # closer than 400 mm
        depth[30, 40] = 0
        assert FrameLocator().estimate_depth(depth, 40, 30) is None

    def test_too_few_valid_samples(self):
        _, depth = blank_frames(0)
        depth[26, 36:41] = 2000  # five valid samples
        assert FrameLocator().estimate_depth(depth, 40, 30) is None

    def test_unresolvable_depth_misses(self):
        ir, depth = blank_frames(0)
        blob(ir, 40, 30)
        locator = FrameLocator()
        assert locator.locate(ir, depth) is None
        assert locator.last_miss == "depth"


class TestLocate:
    def test_locate(self):
        ir, depth = blank_frames(1800)
        blob(ir, 70, 60)
        assert FrameLocator().locate(ir, depth) == (70, 60, 1800)

    def test_shape_mismatch_is_a_miss(self, caplog):
        ir, _ = blank_frames()
        blob(ir, 40, 30)
        locator = FrameLocator()
        with caplog.at_level("WARNING", logger="spell_engine.locator"):
            assert locator.locate(ir, np.zeros((10, 10), dtype=np.uint16)) is None
        assert locator.last_miss == "shape"
        assert "differ in shape" in caplog.text

        fix = locator.track(ir, np.zeros((10, 10), dtype=np.uint16), canvas_size=(W, H), source_size=(W, H))
        assert fix is None
        assert locator.last_miss == "shape"

    def test_track_full_chain(self):
        ir, depth = blank_frames()
        blob(ir, 40, 30)
        fix = FrameLocator().track(ir, depth, canvas_size=(2 * W, 2 * H), source_size=(W, H))
        assert isinstance(fix, WandFix)
        assert (fix.ir_x, fix.ir_y, fix.depth_mm) == (40, 30, 1500)
        assert fix.canvas_x == pytest.approx(80.0)
        assert fix.canvas_y == pytest.approx(60.0)
        assert not fix.depth_estimated

    def test_track_rejects_non_finite_color(self):
        ir, depth = blank_frames()
        blob(ir, 40, 30)
        locator = FrameLocator(depth_to_color=lambda x, y, d: (float("inf"), 0.0))
        assert locator.track(ir, depth, (W, H), (W, H)) is None
        assert locator.last_miss == "color"

        locator = FrameLocator(depth_to_color=lambda x, y, d: (float("nan"), float("nan")))
        assert locator.track(ir, depth, (W, H), (W, H)) is None

    def test_track_rejects_tiny_canvas(self):
        ir, depth = blank_frames()
        blob(ir, 40, 30)
        locator = FrameLocator()
        assert locator.track(ir, depth, (5, 100), (W, H)) is None
        assert locator.last_miss == "canvas"

    def test_track_miss_reason(self):
        ir, depth = blank_frames()
        locator = FrameLocator()
        assert locator.track(ir, depth, (W, H), (W, H)) is None
        assert locator.last_miss == "peak"

    def test_identity_mapping(self):
        assert identity_depth_to_color(3, 4, 1000) == (3.0, 4.0)


class TestMapToCanvas:
    def test_same_geometry(self):
        assert map_to_canvas(960, 540, (1920, 1080), (1920, 1080)) == (960, 540)

    def test_letterbox(self):
        x, y = map_to_canvas(960, 540, (1000, 1000), (1920, 1080))
        assert x == pytest.approx(500.0)
        assert y == pytest.approx(500.0)

        x, y = map_to_canvas(0, 0, (1000, 1000), (1920, 1080))
        assert x == pytest.approx(0.0)
        assert y == pytest.approx(218.75)

    def test_outside_displayed_image(self):
        assert map_to_canvas(-10, 0, (1000, 1000), (1920, 1080)) is None
        assert map_to_canvas(1921, 0, (1000, 1000), (1920, 1080)) is None
        assert map_to_canvas(0, 1100, (1000, 1000), (1920, 1080)) is None

    def test_small_canvas_rejected(self):
        assert map_to_canvas(10, 10, (9, 500), (1920, 1080)) is None
        assert map_to_canvas(10, 10, (500, 9), (1920, 1080)) is None

    def test_bad_source_rejected(self):
        assert map_to_canvas(10, 10, (500, 500), (0, 1080)) is None


class TestDepthFallback:
    def _locator(self):
        return FrameLocator(LocatorConfig(depth_fallback=True))

    def test_disabled_by_default(self):
        ir, depth = blank_frames(2000)
        depth[50:52, 80:82] = 0
        assert FrameLocator().locate(ir, depth) is None

    def test_finds_hole_near_center(self):
        ir, depth = blank_frames(2000)
        depth[60, 80] = 0
        assert self._locator().locate(ir, depth) == (80, 60, 2000)

    def test_prefers_hole_near_last_pixel(self):
        ir, depth = blank_frames(2000)
        depth[60, 80] = 0
        depth[20, 20] = 0
        locator = self._locator()
        blob(ir, 25, 25)
        assert locator.track(ir, depth, (W, H), (W, H)) is not None

        ir[:] = 0
        x, y, _ = locator.locate(ir, depth)
        assert (x, y) == (20, 20)

    def test_reset_forgets_last_pixel(self):
        ir, depth = blank_frames(2000)
        depth[60, 80] = 0
        depth[20, 20] = 0
        locator = self._locator()
        blob(ir, 25, 25)
        locator.track(ir, depth, (W, H), (W, H))
        locator.reset()

        ir[:] = 0
        x, y, _ = locator.locate(ir, depth)
        assert (x, y) == (80, 60)

    def test_nearest_valid_when_no_hole(self):
        ir, depth = blank_frames(3000)
        depth[5, 5] = 800
        assert self._locator().locate(ir, depth) == (5, 5, 800)

    def test_nothing_valid(self):
        ir, depth = blank_frames(0)
        assert self._locator().locate(ir, depth) is None
