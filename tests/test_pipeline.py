"""Tests for the frame-driven wand pipeline."""

import numpy as np
import pytest

from spell_engine.capture import CaptureState, EventType
from spell_engine.config import DisplayConfig, SpellEngineConfig
from spell_engine.locator import FrameLocator
from spell_engine.pipeline import CursorUpdate, WandPipeline
from spell_engine.recorder import SessionRecorder
from spell_engine.templates import DEFAULT_SPELLS

W, H = 160, 120
DT = 0.033


def frames(x=None, y=None):
    ir = np.zeros((H, W), dtype=np.uint16)
    depth = np.full((H, W), 1500, dtype=np.uint16)
    if x is not None:
        ir[y - 1:y + 2, x - 1:x + 2] = 30000
    return ir, depth


def make_pipeline():
    display = DisplayConfig(canvas_width=W, canvas_height=H, source_width=W, source_height=H)
    return WandPipeline(display=display)


class TestProcessFrame:
    def test_visible_frame_moves_cursor(self):
        pipeline = make_pipeline()
        cursor = []
        pipeline.on_cursor(cursor.append)

        assert pipeline.process_frame(*frames(40, 30), timestamp=0.0) == []
        assert cursor == [CursorUpdate(40.0, 30.0, True, 0.0)]
        assert pipeline.engine.point_count == 1

    def test_missing_frame_hides_cursor(self):
        pipeline = make_pipeline()
        cursor = []
        pipeline.on_cursor(cursor.append)

        pipeline.process_frame(*frames(), timestamp=0.0)
        assert len(cursor) == 1
        assert not cursor[0].visible
        assert pipeline.stats.misses == 1

    def test_mismatched_frames_count_as_miss(self):
        pipeline = make_pipeline()
        cursor = []
        pipeline.on_cursor(cursor.append)

        ir, _ = frames(40, 30)
        assert pipeline.process_frame(ir, np.zeros((10, 10), dtype=np.uint16), timestamp=0.0) == []
        assert not cursor[0].visible
        assert pipeline.stats.misses == 1
        assert pipeline.locator.last_miss == "shape"

    def test_swipe_casts(self):
        pipeline = make_pipeline()
        seen = []
        pipeline.on_event(seen.append)

        t = 0.0
        for i, x in enumerate(range(10, 151, 5)):
            t = i * DT
            assert pipeline.process_frame(*frames(x, 60), timestamp=t) == []

        events = []
        for k in range(1, 15):
            events.extend(pipeline.process_frame(*frames(), timestamp=t + k * DT))

        assert len(events) == 1
        assert events[0].type == EventType.RECOGNIZED
        assert events[0].result.name == "Expelliarmus"
        assert seen == events

        stats = pipeline.stats
        assert stats.frames == 29 + 14
        assert stats.points == 29
        assert stats.casts == 1
        assert stats.failures == 0
        assert "locate" in stats.profiler_summary
        assert "frame" in stats.profiler_summary

    def test_locator_forgets_pixel_after_commit(self):
        pipeline = make_pipeline()
        for i in range(15):
            pipeline.process_point(100 + i * 20, 300, i * DT)
        pipeline.locator._last_pixel = (10, 10)
        pipeline.force_recognize(1.0)
        assert pipeline.locator._last_pixel is None

    def test_failure_counted(self):
        pipeline = make_pipeline()
        for i in range(20):
            pipeline.process_point(i * 100, 300, i * DT)
        assert pipeline.stats.failures == 1
        assert pipeline.stats.casts == 0


class TestCommands:
    def test_record_and_cast(self):
        pipeline = make_pipeline()
        pipeline.recognizer.clear_templates()

        assert pipeline.arm("Nox", 0.0).type == EventType.STATE_CHANGED
        pipeline.start(0.0)
        assert pipeline.state == CaptureState.RECORDING

        t = 0.0
        for i in range(40):
            t = 0.1 + i * DT
            pipeline.process_point(100, 100 + i * 10, t)
        assert pipeline.stop(t + DT).type == EventType.RECORDED
        assert pipeline.recognizer.names == ["Nox"]

        for i in range(20):
            pipeline.process_point(300, 50 + i * 15, 5.0 + i * DT)
        evt = pipeline.force_recognize(6.0)
        assert evt.result.success
        assert evt.result.name == "Nox"
        assert pipeline.stats.casts == 1

    def test_cancel_and_clear(self):
        pipeline = make_pipeline()
        pipeline.arm("Nox", 0.0)
        assert pipeline.cancel(0.1).type == EventType.STATE_CHANGED
        assert pipeline.state == CaptureState.OFF
        assert pipeline.clear(0.2).type == EventType.CLEARED


class TestSetup:
    def test_defaults(self):
        pipeline = WandPipeline()
        assert pipeline.recognizer.template_count == len(DEFAULT_SPELLS)
        assert pipeline.engine.profiler is pipeline.profiler

    def test_from_config(self):
        cfg = SpellEngineConfig()
        cfg.locator.ir_threshold = 26000
        cfg.recognizer.min_score = 0.8
        pipeline = WandPipeline.from_config(cfg)
        assert isinstance(pipeline.locator, FrameLocator)
        assert pipeline.locator.threshold == 26000
        assert pipeline.recognizer.min_score == 0.8
        assert pipeline.engine.profiler is pipeline.profiler
        assert pipeline.stats.templates == len(DEFAULT_SPELLS)

    def test_attached_recorder(self):
        pipeline = make_pipeline()
        recorder = SessionRecorder()
        recorder.start(timestamp=0.0)
        pipeline.recorder = recorder

        pipeline.process_frame(*frames(40, 30), timestamp=0.1)
        pipeline.process_frame(*frames(), timestamp=0.2)
        assert recorder.sample_count == 2
        assert recorder.samples[0].x == pytest.approx(40.0)
        assert not recorder.samples[1].visible

    def test_reset(self):
        pipeline = make_pipeline()
        pipeline.process_frame(*frames(40, 30), timestamp=0.0)
        pipeline.reset()
        stats = pipeline.stats
        assert stats.frames == 0
        assert stats.points == 0
        assert pipeline.engine.point_count == 0
