"""Anonymized-path suspicion signal.

Flags requests that arrived through a proxy chain, a generic relay, or a
Tor exit node that announces itself.  Best-effort and advisory: the flag is
surfaced in decisions and metrics, it never blocks a request by itself.
"""

from typing import Mapping

from gatekeeper.principal import header_value

PROXY_CHAIN_HEADER = "x-forwarded-for"
RELAY_HEADER = "via"
TOR_HEADER = "x-tor-exit-node"


def suspicion_reasons(request: Mapping) -> list[str]:
    """Name every signal present on *request*; empty when it looks direct."""
    reasons = []
    forwarded = _present(header_value(request, PROXY_CHAIN_HEADER))
    if forwarded:
        reasons.append("proxy_chain")
        if len(proxy_hops(forwarded)) > 1:
            reasons.append("multi_hop")
    if _present(header_value(request, RELAY_HEADER)):
        reasons.append("relay")
    if _present(header_value(request, TOR_HEADER)):
        reasons.append("tor_exit")
    return reasons


def classify_suspicion(request: Mapping) -> bool:
    return bool(suspicion_reasons(request))


def proxy_hops(forwarded) -> list[str]:
    """Split an X-Forwarded-For value into its non-empty hops."""
    if not forwarded:
        return []
    return [hop.strip() for hop in str(forwarded).split(",") if hop.strip()]


def _present(value) -> str | None:
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None
