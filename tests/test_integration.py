"""Integration tests: sensor frames through to recorded and cast spells."""

import numpy as np

from spell_engine.capture import EventType
from spell_engine.config import SpellEngineConfig
from spell_engine.pipeline import WandPipeline
from spell_engine.recorder import SessionPlayer, SessionRecorder
from spell_engine.templates import TemplateStore, build_recognizer, records_from

W, H = 160, 120
DT = 0.033


def frame_pair(x=None, y=None, hole=False):
    ir = np.zeros((H, W), dtype=np.uint16)
    depth = np.full((H, W), 1500, dtype=np.uint16)
    if x is not None:
        ir[y - 1:y + 2, x - 1:x + 2] = 30000
        if hole:
            depth[y - 1:y + 2, x - 1:x + 2] = 0
    return ir, depth


def l_shape():
    down = [(20, y) for y in range(10, 101, 5)]
    right = [(x, 100) for x in range(25, 121, 5)]
    return down + right


def small_config():
    cfg = SpellEngineConfig()
    cfg.display.canvas_width = cfg.display.source_width = W
    cfg.display.canvas_height = cfg.display.source_height = H
    return cfg


class TestLearnThenCast:
    def test_record_template_from_frames_and_cast_it(self):
        pipeline = WandPipeline.from_config(small_config(), recognizer=build_recognizer([]))

        pipeline.arm("Defodio", 0.0)
        pipeline.start(0.0)
        t = 0.0
        for i, (x, y) in enumerate(l_shape()):
            t = 0.1 + i * DT
            pipeline.process_frame(*frame_pair(x, y), timestamp=t)
        recorded = pipeline.stop(t + DT)
        assert recorded.type == EventType.RECORDED
        assert pipeline.recognizer.names == ["Defodio"]

        # cast the same shape with the wand's depth reading dropped out
        for i, (x, y) in enumerate(l_shape()):
            t = 5.0 + i * DT
            assert pipeline.process_frame(*frame_pair(x, y, hole=True), timestamp=t) == []
        events = []
        for k in range(1, 15):
            events.extend(pipeline.process_frame(*frame_pair(), timestamp=t + k * DT))

        assert len(events) == 1
        assert events[0].result.success
        assert events[0].result.name == "Defodio"
        assert pipeline.stats.casts == 1

    def test_templates_survive_a_store_round_trip(self, tmp_path):
        pipeline = WandPipeline.from_config(small_config(), recognizer=build_recognizer([]))
        pipeline.arm("Defodio", 0.0)
        pipeline.start(0.0)
        t = 0.0
        for i, (x, y) in enumerate(l_shape()):
            t = 0.1 + i * DT
            pipeline.process_point(x * 4, y * 4, t)
        pipeline.stop(t + DT)

        store = TemplateStore(tmp_path / "spells.json")
        store.save(records_from(pipeline.recognizer))

        restored = build_recognizer(store.load_or_defaults())
        result = restored.recognize([(x * 2 + 300, y * 2 + 50) for x, y in l_shape()])
        assert result.success
        assert result.name == "Defodio"


class TestRecordedSession:
    def test_live_session_replays_identically(self, tmp_path):
        live = WandPipeline.from_config(small_config())
        recorder = SessionRecorder()
        recorder.start(timestamp=0.0)
        live.recorder = recorder

        live_events = []
        t = 0.0
        for i, x in enumerate(range(10, 151, 5)):
            t = i * DT
            live_events.extend(live.process_frame(*frame_pair(x, 60), timestamp=t))
        for k in range(1, 15):
            live_events.extend(live.process_frame(*frame_pair(), timestamp=t + k * DT))
        recorder.stop()

        path = tmp_path / "session.npz"
        recorder.save_compact(path)

        replayed = SessionPlayer.load(path).replay(WandPipeline.from_config(small_config()))
        assert [e.type for e in replayed] == [e.type for e in live_events]
        assert replayed[-1].result.name == live_events[-1].result.name == "Expelliarmus"
