"""
Target expansion: start/end ranges and CIDR literals to ordered IPv4 lists.
"""

import ipaddress

from ..core.errors import InvalidRangeError, RangeTooLargeError


MAX_RANGE_SIZE = 65536

PRIVATE_NETWORKS = [
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
    ipaddress.IPv4Network("127.0.0.0/8"),
]


def _to_int(address: str) -> int:
    """Parse a dotted-quad IPv4 literal into its unsigned 32-bit value."""
    try:
        return int(ipaddress.IPv4Address(address.strip()))
    except (ipaddress.AddressValueError, AttributeError) as e:
        raise InvalidRangeError(f"Not an IPv4 address: {address!r}") from e


def expand_range(start: str, end: str) -> list[str]:
    """
    Expand an inclusive address range.

    Args:
        start: First address (e.g. "192.168.1.1")
        end: Last address, must not sort below ``start``

    Returns:
        Addresses in ascending numeric order
    """
    first = _to_int(start)
    last = _to_int(end)

    if last < first:
        raise InvalidRangeError(f"End address {end} is lower than start address {start}")

    count = last - first + 1
    if count > MAX_RANGE_SIZE:
        raise RangeTooLargeError(
            f"Range {start} - {end} holds {count} addresses; maximum is {MAX_RANGE_SIZE}"
        )

    return [str(ipaddress.IPv4Address(value)) for value in range(first, last + 1)]


def parse_cidr(cidr: str) -> tuple[str, str]:
    """Return the (network, broadcast) pair for a CIDR literal."""
    parts = cidr.strip().split("/")
    if len(parts) != 2:
        raise InvalidRangeError(
            f"Invalid subnet {cidr!r}. Use CIDR notation (e.g., 192.168.1.0/24)"
        )

    base, prefix_text = parts
    try:
        prefix = int(prefix_text)
    except ValueError as e:
        raise InvalidRangeError(f"Invalid prefix length {prefix_text!r}") from e

    if prefix < 0 or prefix > 32:
        raise InvalidRangeError("Prefix length must be between 0 and 32")

    address = _to_int(base)
    mask = (0xFFFFFFFF << (32 - prefix)) & 0xFFFFFFFF
    network = address & mask
    broadcast = network | (~mask & 0xFFFFFFFF)

    return str(ipaddress.IPv4Address(network)), str(ipaddress.IPv4Address(broadcast))


def expand_cidr(cidr: str) -> list[str]:
    """Expand a CIDR literal, network and broadcast addresses included."""
    network, broadcast = parse_cidr(cidr)
    return expand_range(network, broadcast)


def is_private_network(address: str) -> bool:
    """Whether the address lies in RFC 1918 space or loopback."""
    try:
        ip = ipaddress.IPv4Address(address)
    except ipaddress.AddressValueError:
        return False
    return any(ip in network for network in PRIVATE_NETWORKS)
