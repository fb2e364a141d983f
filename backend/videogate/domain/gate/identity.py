"""Client identity resolution from connection and forwarding information."""

from __future__ import annotations

import ipaddress
from typing import Optional

from videogate.errors import InvalidAddress
from videogate.settings import settings


def _strip_port(address: str) -> str:
    # [v6]:port
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or (rest and not rest.startswith(":")):
            raise InvalidAddress()
        return host
    # v4:port. A bare v6 address has more than one colon and no port to strip.
    if address.count(":") == 1:
        host, _, port = address.partition(":")
        if not port.isdigit():
            raise InvalidAddress()
        return host
    return address


def mask_ipv4(identity: str) -> str:
    """Collapse an IPv4 identity to its /24, e.g. 1.2.3.4 -> 1.2.3.*"""
    octets = identity.split(".")
    if len(octets) != 4:
        return identity
    return ".".join(octets[:3] + ["*"])


def resolve(
    remote_address: Optional[str],
    forwarded_for: Optional[str] = None,
    *,
    mask: Optional[bool] = None,
) -> str:
    """Return the normalized identity for a request.

    A non-empty forwarded-for value wins over the socket address and is used
    verbatim; it is not split as a list. Raises InvalidAddress when the
    selected value is not an IP address (with or without a port).
    """
    source = (forwarded_for or "").strip() or (remote_address or "").strip()
    if not source:
        raise InvalidAddress()
    host = _strip_port(source)
    try:
        ip = ipaddress.ip_address(host)
    except ValueError as exc:
        raise InvalidAddress() from exc
    identity = str(ip)
    if mask is None:
        mask = settings.identity_mask_ipv4
    if mask and ip.version == 4:
        return mask_ipv4(identity)
    return identity
