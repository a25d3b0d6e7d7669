"""Tests for decision -> metric updates."""

from prometheus_client import REGISTRY

from gatekeeper import metrics


def _value(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestRecordDecision:
    def test_counts_request_by_status(self):
        before = _value("gate_requests_total", action="browse", status="allowed")
        metrics.record_decision({"action": "browse", "status": "allowed"})
        assert _value("gate_requests_total", action="browse", status="allowed") == before + 1

    def test_counts_each_suspicion_reason(self):
        before = _value("gate_suspicious_requests_total", reason="tor_exit")
        metrics.record_decision({
            "action": "browse", "status": "allowed",
            "suspicion_reasons": ["relay", "tor_exit"],
        })
        assert _value("gate_suspicious_requests_total", reason="tor_exit") == before + 1

    def test_escalation_counts_violation_and_block_length(self):
        before = _value("gate_violations_total", action="upload")
        blocks_before = _value("gate_block_seconds_count")
        metrics.record_decision({
            "action": "upload", "status": "rate_limited",
            "escalated": True, "block_duration_seconds": 300.0,
        })
        assert _value("gate_violations_total", action="upload") == before + 1
        assert _value("gate_block_seconds_count") == blocks_before + 1

    def test_folded_crossing_is_not_a_violation(self):
        before = _value("gate_violations_total", action="report")
        metrics.record_decision({"action": "report", "status": "rate_limited", "escalated": False})
        metrics.record_decision({"action": "report", "status": "blocked"})
        assert _value("gate_violations_total", action="report") == before
