"""Tests for the penalty state machine — escalation, lazy unblock, idempotence."""

import threading

import pytest

from gatekeeper.errors import InvalidKey, InvalidTimestamp
from gatekeeper.penalties import (
    ESCALATION_TIERS, PenaltyState, PenaltyTracker, escalate,
)


class TestEscalate:
    def test_first_violation_is_one_minute(self):
        assert escalate(1) == 60

    def test_second_violation_is_five_minutes(self):
        assert escalate(2) == 300

    @pytest.mark.parametrize("n", [3, 4, 10, 1000])
    def test_later_violations_are_one_hour(self, n):
        assert escalate(n) == 3600

    def test_tiers_strictly_increase(self):
        assert list(ESCALATION_TIERS) == sorted(set(ESCALATION_TIERS))

    def test_zero_is_rejected(self):
        with pytest.raises(ValueError):
            escalate(0)


class TestTransitions:
    def setup_method(self):
        self.tracker = PenaltyTracker()

    def test_unknown_key_is_clear_and_admitted(self):
        admission = self.tracker.check_admission("k", 0)
        assert admission.allowed
        assert admission.remaining_block_ms == 0
        assert self.tracker.state("k", 0) is PenaltyState.CLEAR
        assert len(self.tracker) == 0

    def test_violation_blocks(self):
        assert self.tracker.on_violation("k", 1000) == 60
        assert self.tracker.state("k", 1000) is PenaltyState.BLOCKED
        record = self.tracker.get("k")
        assert record.violation_count == 1
        assert record.blocked_until == 1060

    def test_denied_with_remaining_time(self):
        self.tracker.on_violation("k", 1000)
        admission = self.tracker.check_admission("k", 1030.5)
        assert not admission.allowed
        assert admission.remaining_block_ms == 29500

    def test_repeated_checks_do_not_mutate_count(self):
        self.tracker.on_violation("k", 0)
        for t in range(0, 60, 5):
            assert not self.tracker.check_admission("k", t).allowed
        assert self.tracker.get("k").violation_count == 1

    def test_block_expires_exactly_at_deadline(self):
        self.tracker.on_violation("k", 0)
        assert self.tracker.check_admission("k", 60).allowed
        assert self.tracker.state("k", 60) is PenaltyState.CLEAR

    def test_expiry_unsets_deadline_but_keeps_count(self):
        self.tracker.on_violation("k", 0)
        self.tracker.check_admission("k", 61)
        record = self.tracker.get("k")
        assert record.blocked_until is None
        assert record.violation_count == 1

    def test_state_is_a_pure_read(self):
        self.tracker.on_violation("k", 0)
        assert self.tracker.state("k", 120) is PenaltyState.CLEAR
        assert self.tracker.get("k").blocked_until == 60

    def test_escalation_is_cumulative_across_long_gaps(self):
        durations = []
        for day in range(5):
            now = day * 86400
            self.tracker.check_admission("k", now)
            durations.append(self.tracker.on_violation("k", now))
        assert durations == [60, 300, 3600, 3600, 3600]
        assert self.tracker.get("k").violation_count == 5


class TestClockRegression:
    def test_regression_does_not_crash_or_shorten_block(self):
        tracker = PenaltyTracker()
        tracker.on_violation("k", 1000)
        admission = tracker.check_admission("k", 900)
        assert not admission.allowed
        # still governed by the stored absolute deadline
        assert admission.remaining_block_ms == 160_000
        assert tracker.get("k").last_seen == 1000


class TestAdministration:
    def test_snapshot_is_a_copy(self):
        tracker = PenaltyTracker()
        tracker.on_violation("k", 0)
        snap = tracker.snapshot()
        snap["k"]["violation_count"] = 99
        assert tracker.get("k").violation_count == 1
        assert snap.keys() == {"k"}

    def test_get_returns_a_copy(self):
        tracker = PenaltyTracker()
        tracker.on_violation("k", 0)
        tracker.get("k").violation_count = 99
        assert tracker.get("k").violation_count == 1

    def test_reset(self):
        tracker = PenaltyTracker()
        tracker.on_violation("k", 0)
        assert tracker.reset("k") is True
        assert tracker.get("k") is None
        assert tracker.reset("k") is False
        assert tracker.on_violation("k", 10) == 60

    def test_invalid_key(self):
        with pytest.raises(InvalidKey):
            PenaltyTracker().on_violation("", 0)

    @pytest.mark.parametrize("now", [float("nan"), float("inf"), -1])
    def test_unusable_timestamp(self, now):
        tracker = PenaltyTracker()
        with pytest.raises(InvalidTimestamp):
            tracker.on_violation("k", now)
        with pytest.raises(InvalidTimestamp):
            tracker.check_admission("k", now)
        assert len(tracker) == 0


class TestSnapshotConsistency:
    def test_snapshot_never_pairs_count_with_stale_deadline(self):
        tracker = PenaltyTracker()
        keys = [f"k{i}" for i in range(300)]
        done = threading.Event()
        torn = []

        def escalate_all():
            for _ in range(3):
                for key in keys:
                    tracker.on_violation(key, 0)
            done.set()

        def watch():
            while not done.is_set():
                for key, record in tracker.snapshot().items():
                    if record["blocked_until"] != escalate(record["violation_count"]):
                        torn.append((key, record))

        watchers = [threading.Thread(target=watch) for _ in range(2)]
        writer = threading.Thread(target=escalate_all)
        for t in watchers:
            t.start()
        writer.start()
        writer.join()
        for t in watchers:
            t.join()

        assert torn == []
        assert all(r["violation_count"] == 3 for r in tracker.snapshot().values())
