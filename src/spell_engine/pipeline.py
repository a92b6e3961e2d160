"""Frame-driven wand pipeline: sensor frame -> cursor -> capture -> spell.

One call to :meth:`WandPipeline.process_frame` is one atomic unit of work.
Frames must be delivered from a single thread (or through one queue per
pipeline); nothing here locks.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from spell_engine.capture import CaptureEvent, CaptureState, EventType, StrokeCaptureEngine
from spell_engine.cleanup import StrokeCleaner
from spell_engine.config import DisplayConfig, SpellEngineConfig
from spell_engine.locator import DepthToColor, FrameLocator
from spell_engine.profiler import PipelineProfiler
from spell_engine.recognizer import GestureRecognizer
from spell_engine.recorder import SessionRecorder

logger = logging.getLogger("spell_engine.pipeline")


@dataclass
class CursorUpdate:
    """Live feedback: where the wand dot is, and whether to show it."""
    x: float
    y: float
    visible: bool
    timestamp: float


@dataclass
class PipelineStats:
    """Runtime counters."""
    frames: int
    points: int
    misses: int
    casts: int
    failures: int
    state: str = "off"
    templates: int = 0
    over_budget: int = 0
    profiler_summary: dict = field(default_factory=dict)


class WandPipeline:
    """End-to-end pipeline wiring FrameLocator into StrokeCaptureEngine."""

    def __init__(
        self,
        locator: Optional[FrameLocator] = None,
        engine: Optional[StrokeCaptureEngine] = None,
        display: Optional[DisplayConfig] = None,
        profiler: Optional[PipelineProfiler] = None,
    ):
        self.profiler = profiler or PipelineProfiler()
        self.locator = locator or FrameLocator()
        self.engine = engine or StrokeCaptureEngine(GestureRecognizer.with_defaults())
        if self.engine.profiler is None:
            self.engine.profiler = self.profiler
        self.display = display or DisplayConfig()

        self._cursor_callbacks: list[Callable[[CursorUpdate], None]] = []
        self.recorder: Optional[SessionRecorder] = None
        self._frames = 0
        self._points = 0
        self._misses = 0
        self._casts = 0
        self._failures = 0
        self.engine.on_event(self._count)

    @classmethod
    def from_config(
        cls,
        config: SpellEngineConfig,
        recognizer: Optional[GestureRecognizer] = None,
        depth_to_color: Optional[DepthToColor] = None,
    ) -> WandPipeline:
        if recognizer is None:
            recognizer = GestureRecognizer.with_defaults(config.recognizer)
        logger.info("Pipeline ready. Templates=%d", recognizer.template_count)
        profiler = PipelineProfiler()
        engine = StrokeCaptureEngine(
            recognizer,
            config.capture,
            StrokeCleaner(config.cleaner),
            profiler=profiler,
        )
        return cls(
            locator=FrameLocator(config.locator, depth_to_color),
            engine=engine,
            display=config.display,
            profiler=profiler,
        )

    @property
    def recognizer(self) -> GestureRecognizer:
        return self.engine.recognizer

    def on_event(self, callback: Callable[[CaptureEvent], None]):
        """Register a callback for capture/recognition events."""
        self.engine.on_event(callback)

    def on_cursor(self, callback: Callable[[CursorUpdate], None]):
        """Register a callback for per-frame cursor visibility/position."""
        self._cursor_callbacks.append(callback)

    def process_frame(
        self,
        ir: np.ndarray,
        depth: np.ndarray,
        timestamp: Optional[float] = None,
    ) -> list[CaptureEvent]:
        """Process one IR + depth frame pair and return triggered events."""
        now = timestamp if timestamp is not None else time.monotonic()
        with self.profiler.frame():
            self._frames += 1
            with self.profiler.stage("locate"):
                fix = self.locator.track(ir, depth, self.display.canvas_size, self.display.source_size)
            if fix is None:
                return self.process_missing(now)
            return self.process_point(fix.canvas_x, fix.canvas_y, now)

    def process_point(self, x: float, y: float, timestamp: Optional[float] = None) -> list[CaptureEvent]:
        """Feed an already resolved canvas point (bypasses the locator)."""
        now = timestamp if timestamp is not None else time.monotonic()
        self._points += 1
        if self.recorder is not None:
            self.recorder.add_point(x, y, now)
        self._cursor(CursorUpdate(x, y, True, now))
        with self.profiler.stage("capture"):
            events = self.engine.on_point(x, y, now)
        return self._after(events)

    def process_missing(self, timestamp: Optional[float] = None) -> list[CaptureEvent]:
        now = timestamp if timestamp is not None else time.monotonic()
        self._misses += 1
        if self.recorder is not None:
            self.recorder.add_missing(now)
        self._cursor(CursorUpdate(0.0, 0.0, False, now))
        with self.profiler.stage("capture"):
            events = self.engine.on_missing(now)
        return self._after(events)

    # --- commands ---

    def arm(self, name: str, timestamp: Optional[float] = None) -> CaptureEvent:
        return self._after_command(self.engine.arm(name, timestamp))

    def start(self, timestamp: Optional[float] = None) -> CaptureEvent:
        return self._after_command(self.engine.start(timestamp))

    def stop(self, timestamp: Optional[float] = None) -> CaptureEvent:
        return self._after_command(self.engine.stop(timestamp))

    def cancel(self, timestamp: Optional[float] = None) -> CaptureEvent:
        return self._after_command(self.engine.cancel("cancel", timestamp))

    def clear(self, timestamp: Optional[float] = None) -> CaptureEvent:
        return self._after_command(self.engine.clear(timestamp))

    def force_recognize(self, timestamp: Optional[float] = None) -> CaptureEvent:
        return self._after_command(self.engine.force_recognize(timestamp))

    # --- internals ---

    def _after(self, events: list[CaptureEvent]) -> list[CaptureEvent]:
        if events and self.engine.point_count == 0:
            self.locator.reset()
        return events

    def _after_command(self, event: CaptureEvent) -> CaptureEvent:
        self._after([event])
        return event

    def _cursor(self, update: CursorUpdate):
        for cb in self._cursor_callbacks:
            cb(update)

    def _count(self, event: CaptureEvent):
        if event.type == EventType.RECOGNIZED and event.result is not None and event.result.success:
            self._casts += 1
        elif event.is_failure:
            self._failures += 1

    @property
    def state(self) -> CaptureState:
        return self.engine.state

    @property
    def stats(self) -> PipelineStats:
        return PipelineStats(
            frames=self._frames,
            points=self._points,
            misses=self._misses,
            casts=self._casts,
            failures=self._failures,
            state=self.engine.state.value,
            templates=self.recognizer.template_count,
            over_budget=self.profiler.over_budget,
            profiler_summary=self.profiler.summary(),
        )

    def reset(self):
        """Drop in-flight state and counters; templates are kept."""
        self.engine.cancel("reset")
        self.locator.reset()
        self._frames = self._points = self._misses = 0
        self._casts = self._failures = 0
        self.profiler.reset()
