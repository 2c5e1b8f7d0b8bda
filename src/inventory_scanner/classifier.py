"""
Port-based device classification.

Fallback used when SNMP and HTTP probing leave the asset type undetermined.
Rules are evaluated top-down; the first match wins.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from ._types import AssetType

logger = logging.getLogger(__name__)

PortRule = tuple[str, Callable[[frozenset[int]], bool], AssetType]


def _any(*ports: int) -> Callable[[frozenset[int]], bool]:
    return lambda open_ports: any(p in open_ports for p in ports)


# Ordered (name, predicate, result) rules
PORT_RULES: tuple[PortRule, ...] = (
    (
        "printer ports (9100/515)",
        _any(9100, 515),
        AssetType.PRINTER,
    ),
    (
        "SSH+SNMP without Windows RPC",
        lambda p: 22 in p and 161 in p and 135 not in p,
        AssetType.NETWORK_EQUIPMENT,
    ),
    (
        "Windows SMB/RPC ports (135/139/445)",
        _any(135, 139, 445),
        AssetType.COMPUTER,
    ),
    (
        "SSH with HTTP/HTTPS",
        lambda p: 22 in p and (80 in p or 443 in p),
        AssetType.COMPUTER,
    ),
    (
        "RDP or SSH",
        _any(3389, 22),
        AssetType.COMPUTER,
    ),
)

DEFAULT_RULE = "no specific pattern (default)"


def explain_ports(open_ports: Iterable[int]) -> tuple[AssetType, str]:
    """Classify by open ports, returning the type and the rule that matched."""
    port_set = frozenset(open_ports)
    for name, predicate, result in PORT_RULES:
        if predicate(port_set):
            return result, name
    return AssetType.COMPUTER, DEFAULT_RULE


def classify_by_ports(open_ports: Iterable[int]) -> AssetType:
    """
    Classify a device from its open-port set.

    Pure and deterministic; never returns UNKNOWN.

    Args:
        open_ports: Open port numbers (any iterable, including a
            port -> latency mapping)
    """
    asset_type, rule = explain_ports(open_ports)
    logger.debug(f"Port classification: {rule} -> {asset_type.value}")
    return asset_type
