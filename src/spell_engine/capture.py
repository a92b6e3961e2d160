"""Stroke capture state machine.

Turns a stream of canvas points and "point missing" signals into cast
attempts. Outside of template recording it decides, point by point,
whether the operator is still drawing, has finished (hold still, closed
shape, tracking lost, time limit), has failed (too slow, too long) or
was only producing noise.

Recording mode (Off -> Armed -> Recording -> Off) captures a new template
instead of recognizing.

Usage:
    engine = StrokeCaptureEngine(GestureRecognizer.with_defaults())
    engine.on_event(lambda evt: print(evt.type, evt.message))
    # In frame loop:
    if fix:
        engine.on_point(fix.canvas_x, fix.canvas_y, timestamp=now)
    else:
        engine.on_missing(timestamp=now)
"""

from __future__ import annotations

import logging
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from spell_engine.cleanup import StrokeCleaner
from spell_engine.config import CaptureConfig
from spell_engine.errors import Reason
from spell_engine.profiler import PipelineProfiler
from spell_engine.recognizer import GestureRecognizer, RecognitionResult
from spell_engine.stroke import SamplePoint

logger = logging.getLogger("spell_engine.capture")


class CaptureState(Enum):
    OFF = "off"
    ARMED = "armed"
    RECORDING = "recording"


class EventType(Enum):
    RECOGNIZED = "recognized"  # a stroke was committed; see result.success
    CAST_FAILED = "cast_failed"  # time/length guard tripped before recognition
    CLEARED = "cleared"  # noise, idle or manual clear; not a failure
    RECORDED = "recorded"
    RECORD_FAILED = "record_failed"
    STATE_CHANGED = "state_changed"
    IGNORED = "ignored"  # command not applicable in the current state


@dataclass
class CaptureEvent:
    """Something the presentation layer should report."""
    type: EventType
    message: str
    timestamp: float
    state: CaptureState = CaptureState.OFF
    reason: Optional[Reason] = None
    result: Optional[RecognitionResult] = None
    template_name: str = ""
    points: list[SamplePoint] = field(default_factory=list)

    @property
    def is_failure(self) -> bool:
        return self.type in (EventType.CAST_FAILED, EventType.RECORD_FAILED) or (
            self.type == EventType.RECOGNIZED and self.result is not None and not self.result.success
        )


class StrokeCaptureEngine:
    """Accumulates one in-flight stroke and applies commit/fail/clear policy.

    All timing comes from the ``timestamp`` arguments (seconds, monotonic);
    they default to ``time.monotonic()`` so live callers may omit them.
    """

    def __init__(
        self,
        recognizer: Optional[GestureRecognizer] = None,
        config: Optional[CaptureConfig] = None,
        cleaner: Optional[StrokeCleaner] = None,
        profiler: Optional[PipelineProfiler] = None,
    ):
        self.recognizer = recognizer or GestureRecognizer()
        self.config = config or CaptureConfig()
        self.cleaner = cleaner or StrokeCleaner()
        self.profiler = profiler

        self._callbacks: list[Callable[[CaptureEvent], None]] = []

        self._state = CaptureState.OFF
        self._pending_name = ""
        self._record_start: Optional[float] = None

        self._stroke: list[SamplePoint] = []
        self._length = 0.0
        self._missing = 0
        self._last_point_time: Optional[float] = None
        self._stroke_start: Optional[float] = None
        self._committed = False
        self._last_move: Optional[SamplePoint] = None

    def on_event(self, callback: Callable[[CaptureEvent], None]):
        """Register a callback for every emitted event."""
        self._callbacks.append(callback)

    # --- state ---

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def pending_name(self) -> str:
        return self._pending_name

    @property
    def stroke(self) -> list[SamplePoint]:
        return list(self._stroke)

    @property
    def point_count(self) -> int:
        return len(self._stroke)

    @property
    def stroke_length(self) -> float:
        return self._length

    @property
    def missing_count(self) -> int:
        return self._missing

    # --- commands ---

    def arm(self, name: str, timestamp: Optional[float] = None) -> CaptureEvent:
        """Prepare to record a template called ``name``."""
        now = self._now(timestamp)
        name = (name or "").strip()
        if not name:
            logger.warning("Enter a spell name before recording.")
            return self._emit(EventType.IGNORED, "Enter spell name first", now, reason=Reason.RECORD_TOO_SHORT)

        self._state = CaptureState.ARMED
        self._pending_name = name
        self._reset_buffers()
        logger.info("ARMED: %s | recenter wand, then start", name)
        return self._emit(EventType.STATE_CHANGED, f"Armed '{name}'. Recenter wand, then start.", now)

    def start(self, timestamp: Optional[float] = None) -> CaptureEvent:
        now = self._now(timestamp)
        if self._state != CaptureState.ARMED:
            return self._emit(EventType.IGNORED, "Start ignored: not armed", now)

        self._state = CaptureState.RECORDING
        self._record_start = now
        self._reset_buffers()
        logger.info("RECORDING: capturing points for %s", self._pending_name)
        return self._emit(EventType.STATE_CHANGED, "Recording... draw spell, then stop.", now)

    def stop(self, timestamp: Optional[float] = None) -> CaptureEvent:
        now = self._now(timestamp)
        if self._state != CaptureState.RECORDING:
            return self._emit(EventType.IGNORED, "Stop ignored: not recording", now)
        return self._finalize_recording("Stop requested", now)

    def cancel(self, reason: str = "cancel", timestamp: Optional[float] = None) -> CaptureEvent:
        """Return to Off and drop everything in flight."""
        now = self._now(timestamp)
        was = self._state
        self._state = CaptureState.OFF
        self._pending_name = ""
        self._record_start = None
        self._reset_buffers()
        if was != CaptureState.OFF:
            logger.info("Recording canceled (%s).", reason)
            return self._emit(EventType.STATE_CHANGED, f"Recording canceled ({reason})", now)
        return self._emit(EventType.CLEARED, f"Cleared ({reason})", now)

    def clear(self, timestamp: Optional[float] = None) -> CaptureEvent:
        return self.cancel("manual clear", timestamp)

    def force_recognize(self, timestamp: Optional[float] = None) -> CaptureEvent:
        """Commit now (or finish the recording, if one is running)."""
        now = self._now(timestamp)
        if self._state == CaptureState.RECORDING:
            return self._finalize_recording("Force (stop equivalent)", now)

        event = self._commit("Force recognize", now)
        if event is None:
            logger.info("Force recognize: not enough points.")
            return self._emit(
                EventType.IGNORED, "Force recognize: not enough points", now, reason=Reason.TOO_FEW_POINTS,
            )
        return event

    # --- input ---

    def on_point(self, x: float, y: float, timestamp: Optional[float] = None) -> list[CaptureEvent]:
        """Feed a resolved canvas point. Returns any events it triggered."""
        now = self._now(timestamp)
        cfg = self.config
        self._last_point_time = now
        self._missing = 0

        # Armed: observe but discard so the operator can recenter
        if self._state == CaptureState.ARMED:
            return []

        point = SamplePoint(x, y, now)
        if not self._stroke:
            self._stroke_start = now
            self._committed = False
            self._last_move = point
            if self._state == CaptureState.RECORDING:
                self._record_start = now
        else:
            self._length += self._stroke[-1].distance_to(point)
        self._stroke.append(point)

        if self._state == CaptureState.RECORDING:
            return []

        # Movement / stationary policy
        if self._last_move is not None:
            if point.distance_to(self._last_move) >= cfg.min_movement_px:
                self._last_move = point
            elif (now - self._last_move.t) > cfg.stationary_timeout_s and len(self._stroke) > cfg.stationary_min_points:
                if self._length >= cfg.hold_min_length_px and len(self._stroke) >= cfg.hold_min_points:
                    self._committed = True
                    return self._as_list(self._commit("Hold-to-finish", now))
                return [self._clear("Cleared: tiny/noise stroke", now)]

        elapsed = now - self._stroke_start
        if elapsed > cfg.max_spell_duration_s:
            return [self._fail("Spell took too long", Reason.STROKE_TIMED_OUT, now)]
        if self._length > cfg.max_stroke_length_px:
            return [self._fail("Spell path too long", Reason.STROKE_TOO_LONG, now)]

        # Closed shape: the stroke came back to where it started
        if not self._committed and len(self._stroke) >= cfg.early_commit_min_points:
            close = self._stroke[0].distance_to(point)
            if close < cfg.closed_shape_distance_px and self._length > cfg.closed_shape_min_length_px:
                self._committed = True
                return self._as_list(self._commit("Closed shape detected", now))

        if not self._committed and elapsed > cfg.safety_commit_s:
            self._committed = True
            return self._as_list(self._commit("Max duration reached", now))

        return []

    def on_missing(self, timestamp: Optional[float] = None) -> list[CaptureEvent]:
        """Feed a frame where the wand could not be resolved."""
        now = self._now(timestamp)
        cfg = self.config
        self._missing += 1

        if self._state == CaptureState.RECORDING:
            if len(self._stroke) >= cfg.min_record_points and self._missing >= cfg.missing_frames_to_end:
                return [self._finalize_recording("Tracking lost (auto-stop)", now)]
            return []

        if (
            self._stroke
            and self._last_point_time is not None
            and (now - self._last_point_time) > cfg.idle_clear_s
        ):
            return [self._clear("Idle: no input", now)]

        if len(self._stroke) > cfg.missing_end_min_points and self._missing >= cfg.missing_frames_to_end:
            return self._as_list(self._commit("Stroke ended (tracking lost)", now))

        return []

    # --- internals ---

    def _commit(self, why: str, now: float) -> Optional[CaptureEvent]:
        """Hand the stroke to cleanup + recognition. None if too short."""
        if len(self._stroke) < self.config.min_commit_points:
            return None

        stroke = list(self._stroke)
        self._stroke.clear()
        self._length = 0.0
        self._missing = 0

        with self._stage("recognize"):
            cleaned = self.cleaner.clean(stroke)
            result = self.recognizer.recognize(cleaned)
        self._reset_buffers()

        if result.success:
            logger.info("CAST: %s (score=%.2f) [%s]", result.name, result.score, why)
            message = f"{why}. Cast: {result.name}"
        else:
            logger.info("FAIL: %s [%s]", result.reason, why)
            message = f"{why}. Not recognized: {result.reason}"

        return self._emit(
            EventType.RECOGNIZED, message, now,
            reason=result.code, result=result, points=cleaned,
        )

    def _finalize_recording(self, why: str, now: float) -> CaptureEvent:
        cfg = self.config
        name = self._pending_name.strip()
        stroke = list(self._stroke)
        start = self._record_start if self._record_start is not None else now

        self._state = CaptureState.OFF
        self._pending_name = ""
        self._record_start = None
        self._reset_buffers()

        cleaned = self.cleaner.clean(stroke)
        duration = now - start

        if not name or len(cleaned) < cfg.min_record_points or duration < cfg.min_record_duration_s:
            logger.warning(
                "RECORD FAIL: Too short/empty. name=%r, points=%d, durMs=%.0f (%s)",
                name, len(cleaned), duration * 1000.0, why,
            )
            return self._emit(
                EventType.RECORD_FAILED, "Record failed: too short", now,
                reason=Reason.RECORD_TOO_SHORT, template_name=name, points=cleaned,
            )

        self.recognizer.add_template(name, cleaned, replace=True)
        logger.info("RECORDED: %s points=%d (%s)", name, len(cleaned), why)
        return self._emit(
            EventType.RECORDED, f"Recorded: {name}", now, template_name=name, points=cleaned,
        )

    def _fail(self, why: str, reason: Reason, now: float) -> CaptureEvent:
        logger.warning("FAILED CAST: %s", why)
        stroke = list(self._stroke)
        self._reset_buffers()
        return self._emit(EventType.CAST_FAILED, why, now, reason=reason, points=stroke)

    def _clear(self, why: str, now: float) -> CaptureEvent:
        logger.info("Cleared: %s", why)
        self._reset_buffers()
        return self._emit(EventType.CLEARED, why, now)

    def _reset_buffers(self):
        self._stroke.clear()
        self._length = 0.0
        self._missing = 0
        self._committed = False
        self._stroke_start = None
        self._last_move = None

    def _emit(self, type: EventType, message: str, now: float, **kwargs) -> CaptureEvent:
        event = CaptureEvent(type=type, message=message, timestamp=now, state=self._state, **kwargs)
        for cb in self._callbacks:
            cb(event)
        return event

    def _stage(self, name: str):
        if self.profiler is None:
            return nullcontext()
        return self.profiler.stage(name)

    @staticmethod
    def _as_list(event: Optional[CaptureEvent]) -> list[CaptureEvent]:
        return [event] if event is not None else []

    @staticmethod
    def _now(timestamp: Optional[float]) -> float:
        return timestamp if timestamp is not None else time.monotonic()
