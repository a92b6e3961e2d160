"""Pointer session recording and replay.

Record the resolved wand stream (canvas points and misses) so casts can be
replayed through the capture engine without a sensor:
- reproducible tests and CI on headless machines
- tuning capture thresholds against real sessions
- learning templates from a saved performance
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional

import numpy as np

if TYPE_CHECKING:
    from spell_engine.capture import CaptureEvent
    from spell_engine.pipeline import WandPipeline


@dataclass
class RecordedSample:
    """One frame of a session: a visible canvas point or a miss."""
    timestamp: float  # seconds from recording start
    x: float = 0.0
    y: float = 0.0
    visible: bool = True


class SessionRecorder:
    """Records a wand pointer stream to a file.

    Usage:
        recorder = SessionRecorder()
        recorder.start()
        # In your frame loop:
        recorder.add_point(x, y)   # or recorder.add_missing()
        # When done:
        recorder.save("session.json")
    """

    def __init__(self):
        self._samples: list[RecordedSample] = []
        self._start_time: Optional[float] = None
        self._recording = False

    def start(self, timestamp: Optional[float] = None):
        """Begin a new recording session."""
        self._samples = []
        self._start_time = timestamp if timestamp is not None else time.monotonic()
        self._recording = True

    def stop(self) -> int:
        """Stop recording. Returns number of samples captured."""
        self._recording = False
        return len(self._samples)

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def samples(self) -> list[RecordedSample]:
        return list(self._samples)

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def duration(self) -> float:
        if not self._samples:
            return 0.0
        return self._samples[-1].timestamp

    def _relative(self, timestamp: Optional[float]) -> float:
        now = timestamp if timestamp is not None else time.monotonic()
        return now - self._start_time

    def add_point(self, x: float, y: float, timestamp: Optional[float] = None):
        if not self._recording:
            return
        self._samples.append(RecordedSample(self._relative(timestamp), float(x), float(y), True))

    def add_missing(self, timestamp: Optional[float] = None):
        if not self._recording:
            return
        self._samples.append(RecordedSample(self._relative(timestamp), visible=False))

    def save(self, path: str | Path):
        """Save recording to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "version": 1,
            "sample_count": len(self._samples),
            "duration": self.duration,
            "samples": [asdict(s) for s in self._samples],
        }
        with open(path, "w") as f:
            json.dump(data, f)

    def save_compact(self, path: str | Path) -> Path:
        """Save in compressed numpy format; returns the ``.npz`` path written."""
        path = Path(path).with_suffix(".npz")
        path.parent.mkdir(parents=True, exist_ok=True)

        table = np.array(
            [[s.timestamp, s.x, s.y] for s in self._samples], dtype=np.float64,
        ).reshape(-1, 3)
        visible = np.array([s.visible for s in self._samples], dtype=bool)
        np.savez_compressed(path, samples=table, visible=visible)
        return path


class SessionPlayer:
    """Replays a recorded pointer session.

    Usage:
        player = SessionPlayer.load("session.json")
        events = player.replay(pipeline)
    """

    def __init__(self, samples: list[RecordedSample]):
        self._samples = samples

    @classmethod
    def load(cls, path: str | Path) -> SessionPlayer:
        path = Path(path)
        if path.suffix == ".npz":
            return cls._load_compact(path)

        with open(path) as f:
            data = json.load(f)

        samples = [
            RecordedSample(
                timestamp=float(s["timestamp"]),
                x=float(s.get("x", 0.0)),
                y=float(s.get("y", 0.0)),
                visible=bool(s.get("visible", True)),
            )
            for s in data["samples"]
        ]
        return cls(samples)

    @classmethod
    def _load_compact(cls, path: Path) -> SessionPlayer:
        data = np.load(path, allow_pickle=False)
        table = data["samples"]
        visible = data["visible"]
        samples = [
            RecordedSample(float(row[0]), float(row[1]), float(row[2]), bool(v))
            for row, v in zip(table, visible)
        ]
        return cls(samples)

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def duration(self) -> float:
        if not self._samples:
            return 0.0
        return self._samples[-1].timestamp

    def play(self) -> Iterator[RecordedSample]:
        """Iterate through all samples instantly (no timing)."""
        yield from self._samples

    def play_realtime(self, speed: float = 1.0) -> Iterator[RecordedSample]:
        """Replay at recorded timing (or scaled by speed factor)."""
        if not self._samples:
            return

        start = time.monotonic()
        for sample in self._samples:
            target_time = sample.timestamp / speed
            elapsed = time.monotonic() - start
            if target_time > elapsed:
                time.sleep(target_time - elapsed)
            yield sample

    def replay(
        self,
        pipeline: WandPipeline,
        offset: float = 0.0,
        realtime: bool = False,
        speed: float = 1.0,
    ) -> list[CaptureEvent]:
        """Feed every sample through a pipeline using recorded timestamps.

        Timestamps passed to the pipeline are ``offset + sample.timestamp``
        whether or not playback is paced in real time.
        """
        events: list[CaptureEvent] = []
        samples = self.play_realtime(speed) if realtime else self.play()
        for sample in samples:
            t = offset + sample.timestamp
            if sample.visible:
                events.extend(pipeline.process_point(sample.x, sample.y, t))
            else:
                events.extend(pipeline.process_missing(t))
        return events

    def get_sample(self, index: int) -> Optional[RecordedSample]:
        if 0 <= index < len(self._samples):
            return self._samples[index]
        return None
