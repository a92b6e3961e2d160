"""Tests for stroke cleanup."""

from spell_engine.cleanup import StrokeCleaner, clean_stroke
from spell_engine.config import CleanerConfig
from spell_engine.stroke import SamplePoint


def run(x0, y0, dx, n, t0=0.0, dt=0.033):
    return [SamplePoint(x0 + i * dx, y0, t0 + i * dt) for i in range(n)]


class TestSplit:
    def test_continuous_stroke_is_one_segment(self):
        cleaner = StrokeCleaner()
        assert len(cleaner.split(run(0, 0, 10, 30))) == 1

    def test_position_jump_splits(self):
        cleaner = StrokeCleaner()
        pts = run(0, 0, 10, 20) + run(400, 0, 10, 10, t0=0.66)
        segments = cleaner.split(pts)
        assert [len(s) for s in segments] == [20, 10]

    def test_time_gap_splits(self):
        cleaner = StrokeCleaner()
        pts = run(0, 0, 10, 15) + run(150, 0, 10, 15, t0=0.462 + 0.2)
        assert len(cleaner.split(pts)) == 2

    def test_empty(self):
        assert StrokeCleaner().split([]) == []


class TestClean:
    def test_keeps_longest_qualifying_segment(self):
        main = run(0, 0, 10, 20)  # 190 px
        glitch = run(600, 300, 10, 5, t0=0.66)
        cleaned = StrokeCleaner().clean(main + glitch)
        assert cleaned == main

    def test_jump_of_200px_drops_short_tail(self):
        main = run(0, 100, 8, 30)
        tail = [SamplePoint(main[-1].x + 200, 100, main[-1].t + 0.033)]
        tail += run(tail[0].x, 100, 5, 6, t0=tail[0].t + 0.033)
        cleaned = StrokeCleaner().clean(main + tail)
        assert len(cleaned) == 30
        assert all(p.x < main[-1].x + 1 for p in cleaned)

    def test_no_discontinuity_returns_everything(self):
        pts = run(0, 0, 10, 40)
        assert StrokeCleaner().clean(pts) == pts

    def test_short_input_unchanged(self):
        pts = [SamplePoint(0, 0, 0.0), SamplePoint(500, 500, 0.033), SamplePoint(0, 0, 5.0)]
        cleaned = StrokeCleaner().clean(pts)
        assert cleaned == pts
        assert isinstance(cleaned, list)

    def test_falls_back_to_longest_path(self):
        # Neither segment reaches 120 px; the longer path wins
        a = run(0, 0, 5, 10)  # 45 px
        b = run(300, 0, 5, 12, t0=0.5)  # 55 px
        cleaned = StrokeCleaner().clean(a + b)
        assert cleaned == b

    def test_segment_needs_enough_points(self):
        cleaner = StrokeCleaner(CleanerConfig(min_segment_points=10))
        sparse = run(0, 0, 50, 6)  # 250 px but only 6 points
        dense = run(1000, 0, 15, 10, t0=0.3)  # 135 px, 10 points
        assert cleaner.clean(sparse + dense) == dense

    def test_result_never_empty(self):
        pts = [SamplePoint(i * 100.0, 0, i * 0.5) for i in range(10)]
        cleaned = StrokeCleaner().clean(pts)
        assert len(cleaned) == 1


class TestCleanStroke:
    def test_functional_form(self):
        main = run(0, 0, 10, 20)
        glitch = run(600, 300, 10, 5, t0=0.66)
        assert clean_stroke(main + glitch) == main

    def test_custom_jump_threshold(self):
        pts = run(0, 0, 10, 20) + run(280, 0, 10, 20, t0=0.66)
        # 100 px jump is tolerated with a looser threshold
        assert len(clean_stroke(pts, jump_threshold_px=150)) == 40
