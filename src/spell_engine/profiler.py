"""Per-stage timing for the frame pipeline.

Each sensor frame is one synchronous unit of work, so recognition must
finish inside the frame interval. The profiler times each stage and
counts frames that overran the budget.

Usage:
    profiler = PipelineProfiler(frame_budget_ms=33.3)

    with profiler.stage("locate"):
        fix = locator.track(ir, depth, canvas, source)

    with profiler.frame():
        ...

    print(profiler.summary())
"""

from __future__ import annotations

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator


@dataclass
class StageStats:
    """Timing statistics for a single pipeline stage."""
    name: str
    avg_ms: float
    min_ms: float
    max_ms: float
    p95_ms: float
    call_count: int


class PipelineProfiler:
    """Rolling-window timings per stage plus a frame budget counter."""

    STAGES = [
        "locate",
        "capture",
        "recognize",
        "frame",
    ]

    def __init__(self, window_size: int = 120, frame_budget_ms: float = 33.3):
        self._window_size = window_size
        self.frame_budget_ms = frame_budget_ms
        self._timings: dict[str, deque[float]] = {
            s: deque(maxlen=window_size) for s in self.STAGES
        }
        self._counts: dict[str, int] = {s: 0 for s in self.STAGES}
        self._over_budget = 0
        self._enabled = True

    def _record(self, name: str, elapsed_ms: float):
        if name not in self._timings:
            self._timings[name] = deque(maxlen=self._window_size)
            self._counts[name] = 0
        self._timings[name].append(elapsed_ms)
        self._counts[name] += 1

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Context manager to time a pipeline stage."""
        if not self._enabled:
            yield
            return

        t0 = time.perf_counter()
        try:
            yield
        finally:
            self._record(name, (time.perf_counter() - t0) * 1000.0)

    @contextmanager
    def frame(self) -> Iterator[None]:
        """Time a whole frame and count it if it overran the budget."""
        if not self._enabled:
            yield
            return

        t0 = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - t0) * 1000.0
            self._record("frame", elapsed_ms)
            if elapsed_ms > self.frame_budget_ms:
                self._over_budget += 1

    def get_stage_stats(self, name: str) -> StageStats | None:
        timings = self._timings.get(name)
        if not timings:
            return None

        sorted_t = sorted(timings)
        n = len(sorted_t)
        return StageStats(
            name=name,
            avg_ms=sum(sorted_t) / n,
            min_ms=sorted_t[0],
            max_ms=sorted_t[-1],
            p95_ms=sorted_t[int(n * 0.95)] if n >= 2 else sorted_t[-1],
            call_count=self._counts.get(name, 0),
        )

    def summary(self) -> dict[str, dict]:
        """Stats for every stage that has been timed at least once."""
        result = {}
        for name in self._timings:
            stats = self.get_stage_stats(name)
            if stats and stats.call_count > 0:
                result[name] = {
                    "avg_ms": round(stats.avg_ms, 3),
                    "min_ms": round(stats.min_ms, 3),
                    "max_ms": round(stats.max_ms, 3),
                    "p95_ms": round(stats.p95_ms, 3),
                    "calls": stats.call_count,
                }
        return result

    @property
    def over_budget(self) -> int:
        return self._over_budget

    def reset(self):
        for d in self._timings.values():
            d.clear()
        for k in self._counts:
            self._counts[k] = 0
        self._over_budget = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool):
        self._enabled = value
