"""
CIDR range enumeration.

Ranges are expanded lazily: a /8 is more than sixteen million addresses
and the port scanner consumes them one at a time.
"""

from __future__ import annotations

import ipaddress
from typing import Iterator, Union

from ._types import IPAddress
from .exceptions import InvalidRange

Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def parse_cidr(cidr: str) -> Network:
    """Parse a CIDR string, masking off host bits."""
    if not isinstance(cidr, str) or "/" not in cidr:
        raise InvalidRange(str(cidr), "expected address/prefix")
    try:
        return ipaddress.ip_network(cidr.strip(), strict=False)
    except ValueError as e:
        raise InvalidRange(cidr, str(e)) from e


def iter_network(network: Network) -> Iterator[IPAddress]:
    """
    Yield every address of a network in ascending order.

    Network and broadcast addresses are included. The loop stops on the
    last address before advancing, so the top of the address space
    (255.255.255.255/32, ffff:...:ffff/128) never computes a successor.
    """
    address = network.network_address
    last = network.broadcast_address
    while True:
        yield address
        if address == last:
            return
        address += 1


def iter_cidr(cidr: str) -> Iterator[IPAddress]:
    """
    Parse a CIDR string and return a lazy iterator over its addresses.

    Raises InvalidRange immediately (not on first iteration) when the
    string does not parse.
    """
    return iter_network(parse_cidr(cidr))


def count_addresses(cidr: str) -> int:
    """Number of addresses iter_cidr() yields for a range."""
    return parse_cidr(cidr).num_addresses
