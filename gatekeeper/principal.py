"""Principal resolution — who is making this request?

A request is a flat mapping of header-like fields.  Header names are
matched case-insensitively; the transport puts the peer address in the
pseudo-field ``remote_addr``.

Preference order:
  1. ``x-user-id`` identity header, used as-is.  It is client-supplied and
     therefore spoofable; the trust model is left to the transport.
  2. The normalized peer address.
  3. ``"unknown"`` when neither is present.
"""

import ipaddress
from typing import Mapping

IDENTITY_HEADER = "x-user-id"
ORIGIN_FIELD = "remote_addr"
UNKNOWN_PRINCIPAL = "unknown"

# One IPv6 customer usually owns a whole delegated prefix and can rotate
# through it freely; /56 is the common residential delegation size.
IPV6_SUBNET = 56


def header_value(request: Mapping, name: str):
    """Case-insensitive field lookup.  Returns None when absent."""
    if name in request:
        return request[name]
    wanted = name.lower()
    for field, value in request.items():
        if isinstance(field, str) and field.lower() == wanted:
            return value
    return None


def normalize_ip(value) -> str | None:
    """Canonical principal form of a peer address, or None if blank.

    Strips any port, folds IPv4-mapped IPv6 back to IPv4 and truncates other
    IPv6 addresses to their /56 network.  Values that are not IP addresses
    (unix sockets, hostnames) are returned stripped and lower-cased.
    """
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    host = _strip_port(raw)
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return host.lower()

    if addr.version == 6:
        if addr.ipv4_mapped is not None:
            return str(addr.ipv4_mapped)
        return str(ipaddress.ip_network(f"{addr}/{IPV6_SUBNET}", strict=False))
    return str(addr)


def resolve_principal(request: Mapping) -> str:
    """Derive the principal key for *request*.  Never raises."""
    user_id = header_value(request, IDENTITY_HEADER)
    if user_id is not None and str(user_id).strip():
        return str(user_id)

    origin = normalize_ip(header_value(request, ORIGIN_FIELD))
    return origin or UNKNOWN_PRINCIPAL


def _strip_port(host: str) -> str:
    # [v6]:port
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end != -1 else host[1:]
    # v4:port; a bare IPv6 address has more than one colon
    if host.count(":") == 1:
        return host.split(":", 1)[0]
    return host
