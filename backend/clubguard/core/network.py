# backend/clubguard/core/network.py
"""
Network address anonymization.

Only the anonymized form of a client address is ever stored. IPv4 addresses
keep their /24 prefix so clustered attack sources can still be correlated;
anything else (IPv6, hostnames, garbage) is kept verbatim.
"""

import re

UNKNOWN_ADDRESS = "unknown"

_IPV4_RE = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")


def _is_unknown(address: str | None) -> bool:
    if address is None:
        return True
    stripped = address.strip()
    return not stripped or stripped.lower() == UNKNOWN_ADDRESS


def anonymize_address(address: str | None) -> str | None:
    """
    Reduce a network address to the bucket stored alongside login attempts.

    Args:
        address: Raw client address, possibly missing.

    Returns:
        None for a missing, empty or "unknown" address; "a.b.c.0" for a dotted
        quad IPv4 address; the input unchanged otherwise.

    Examples:
        >>> anonymize_address("203.0.113.7")
        '203.0.113.0'
        >>> anonymize_address("2001:db8::1")
        '2001:db8::1'
        >>> anonymize_address("unknown") is None
        True
    """
    if _is_unknown(address):
        return None

    match = _IPV4_RE.match(address)
    if match is None:
        return address

    octets = match.groups()
    if any(int(octet) > 255 for octet in octets):
        return address
    return f"{octets[0]}.{octets[1]}.{octets[2]}.0"


def first_forwarded_address(forwarded_for: str | None) -> str | None:
    """Return the left-most entry of an X-Forwarded-For header (the original client)."""
    if not forwarded_for:
        return None
    first = forwarded_for.split(",")[0].strip()
    return first or None
