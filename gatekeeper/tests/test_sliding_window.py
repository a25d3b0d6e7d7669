"""Tests for SlidingWindow — boundaries, eviction, ordering under clock skew."""

from gatekeeper.sliding_window import SlidingWindow


class TestEviction:
    def test_hits_within_window_are_kept(self):
        w = SlidingWindow(60)
        w.add(100)
        w.add(130)
        assert w.count(150) == 2

    def test_hit_exactly_at_boundary_stays_in_window(self):
        """cutoff uses strict <, so a hit exactly max_age old still counts."""
        w = SlidingWindow(60)
        w.add(100)
        assert w.count(160) == 1

    def test_hit_just_past_boundary_is_evicted(self):
        w = SlidingWindow(60)
        w.add(100)
        assert w.count(160.001) == 0

    def test_progressive_eviction(self):
        w = SlidingWindow(10)
        w.add(0)
        w.add(5)
        # t=12: the hit at 0 (age 12s) is gone, the one at 5 is not
        assert w.add(12) == 2
        assert w.count(16) == 1

    def test_add_returns_count_including_new_hit(self):
        w = SlidingWindow(60)
        assert w.add(1) == 1
        assert w.add(2) == 2
        assert w.add(3) == 3


class TestClockRegression:
    def test_earlier_timestamp_is_recorded_at_latest(self):
        w = SlidingWindow(60)
        w.add(100)
        w.add(50)
        assert w.latest == 100
        assert len(w) == 2

    def test_regressed_hit_does_not_evict(self):
        """A backwards timestamp must not be used as 'now' for eviction."""
        w = SlidingWindow(10)
        w.add(100)
        w.add(95)
        assert w.count(100) == 2


class TestClear:
    def test_clear_empties_window(self):
        w = SlidingWindow(60)
        w.add(1)
        w.add(2)
        w.clear()
        assert len(w) == 0
        assert w.latest is None

    def test_add_after_clear(self):
        w = SlidingWindow(60)
        w.add(10)
        w.clear()
        assert w.add(5) == 1


class TestEdgeCases:
    def test_empty_window_count(self):
        assert SlidingWindow(60).count(1000) == 0

    def test_zero_duration_window(self):
        """A 0-second window: only hits at exactly 'now' survive."""
        w = SlidingWindow(0)
        w.add(100)
        assert w.count(100) == 1
        assert w.count(100.5) == 0

    def test_large_window(self):
        w = SlidingWindow(86400)
        w.add(0)
        assert w.count(86399) == 1
