"""Prometheus metrics for the gatekeeper.

Every Counter/Histogram below registers itself in the prometheus_client
global REGISTRY on import; the service exposes them with
start_http_server().  record_decision() is the single place a decision dict
is turned into metric updates.
"""

from prometheus_client import Counter, Histogram

requests_total = Counter(
    "gate_requests_total",
    "Requests evaluated by the gate",
    ["action", "status"],
)
violations_total = Counter(
    "gate_violations_total",
    "Threshold crossings that escalated a block",
    ["action"],
)
block_seconds = Histogram(
    "gate_block_seconds",
    "Block durations handed out on violation",
    buckets=[60, 300, 3600],  # one bucket per escalation tier
)
suspicious_requests_total = Counter(
    "gate_suspicious_requests_total",
    "Requests flagged as arriving through an anonymizing path",
    ["reason"],
)
clock_regressions_total = Counter(
    "gate_clock_regressions_total",
    "Timestamps earlier than one already recorded for the same key",
    ["table"],
)
future_timestamps_total = Counter(
    "gate_future_timestamps_total",
    "Timestamps too far ahead of the clock, pulled back to it",
)
errors_total = Counter(
    "gate_errors_total",
    "Malformed or unroutable request events",
    ["reason"],
)


def record_decision(decision: dict):
    """Update metrics for one decision produced by GateEngine.handle()."""
    action = decision.get("action", "unknown")
    status = decision.get("status", "unknown")

    requests_total.labels(action=action, status=status).inc()
    for reason in decision.get("suspicion_reasons", []):
        suspicious_requests_total.labels(reason=reason).inc()

    # "blocked" decisions are repeat denials of an existing block,
    # only a fresh crossing escalates.
    if status == "rate_limited" and decision.get("escalated"):
        violations_total.labels(action=action).inc()
        block_seconds.observe(decision.get("block_duration_seconds", 0))
