"""
Host discovery for inventory sweeps.

- Port scan: bounded concurrent TCP connect probing of each address
- ARP: best-effort hardware address lookup in the local neighbor cache
"""

from .arp import (
    is_on_attached_subnet,
    local_networks,
    lookup_neighbor_cache,
    normalize_mac,
    resolve_mac,
)
from .port_scan import PortScanner

__all__ = [
    "PortScanner",
    "is_on_attached_subnet",
    "local_networks",
    "lookup_neighbor_cache",
    "normalize_mac",
    "resolve_mac",
]
