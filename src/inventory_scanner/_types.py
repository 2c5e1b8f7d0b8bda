"""
Type definitions for the inventory scanner.

These dataclasses define the core domain model for a sweep: the scan
profile a range is probed with, the per-address host record produced by
the port scanner, and the asset record produced by fingerprinting.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def now_utc() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class AssetType(str, Enum):
    """Asset classification types (inventory item types)."""
    UNKNOWN = "Unknown"
    COMPUTER = "Computer"
    PRINTER = "Printer"
    PERIPHERAL = "Peripheral"
    NETWORK_EQUIPMENT = "NetworkEquipment"
    ROUTER = "Router"


# Defaults applied when a profile leaves a field zero/empty
DEFAULT_PORTS = (22, 80, 443, 135, 139, 445, 3389, 161)
DEFAULT_MAX_WORKERS = 64
DEFAULT_TIMEOUT_MS = 1000


@dataclass
class ScanProfile:
    """
    Discovery behaviour for a range.

    Consumed read-only by the port scanner. Use with_defaults() to get a
    copy where zero/empty fields are replaced by the defaults.
    """
    ports: list[int] = field(default_factory=list)
    max_workers: int = 0
    timeout_ms: int = 0
    protocols: list[str] = field(default_factory=list)
    description: str = ""

    def with_defaults(self) -> "ScanProfile":
        return ScanProfile(
            ports=list(self.ports) if self.ports else list(DEFAULT_PORTS),
            max_workers=self.max_workers if self.max_workers > 0 else DEFAULT_MAX_WORKERS,
            timeout_ms=self.timeout_ms if self.timeout_ms > 0 else DEFAULT_TIMEOUT_MS,
            protocols=list(self.protocols),
            description=self.description,
        )

    @property
    def timeout(self) -> float:
        """Per-port connect timeout in seconds."""
        timeout_ms = self.timeout_ms if self.timeout_ms > 0 else DEFAULT_TIMEOUT_MS
        return timeout_ms / 1000.0

    def protocol_enabled(self, name: str) -> bool:
        """An empty protocol list means every protocol is allowed."""
        if not self.protocols:
            return True
        return name.lower() in (p.lower() for p in self.protocols)


@dataclass(frozen=True)
class HostRecord:
    """
    Port scan outcome for one address.

    Created once by a scanner worker and never mutated afterwards.
    open_ports maps port number to connect latency in seconds.
    """
    address: IPAddress
    alive: bool = False
    open_ports: Mapping[int, float] = field(default_factory=dict)
    mac_address: str = ""

    @property
    def port_list(self) -> list[int]:
        return sorted(self.open_ports)

    def has_port(self, port: int) -> bool:
        return port in self.open_ports


@dataclass
class AssetRecord:
    """
    A fingerprinted, classified device.

    After normalization the type is never UNKNOWN and attributes is
    never None.
    """
    address: Optional[IPAddress] = None
    identifier: str = ""
    type: AssetType = AssetType.UNKNOWN
    hostname: str = ""
    mac_address: str = ""
    vendor: str = ""
    model: str = ""
    os_name: str = ""
    os_version: str = ""
    serial: str = ""
    attributes: Optional[dict[str, str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """JSON-friendly representation."""
        return {
            "identifier": self.identifier,
            "type": self.type.value if isinstance(self.type, AssetType) else self.type,
            "hostname": self.hostname,
            "address": str(self.address) if self.address is not None else "",
            "mac_address": self.mac_address,
            "vendor": self.vendor,
            "model": self.model,
            "os_name": self.os_name,
            "os_version": self.os_version,
            "serial": self.serial,
            "attributes": dict(self.attributes or {}),
        }


@dataclass
class ScanSummary:
    """Result of one sweep over the configured ranges."""
    scan_id: str
    triggered_by: str = "manual"
    started_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None

    ranges_scanned: list[str] = field(default_factory=list)
    ranges_failed: list[str] = field(default_factory=list)
    hosts_probed: int = 0
    hosts_alive: int = 0
    assets: list[AssetRecord] = field(default_factory=list)
    pushed: int = 0
    push_failures: int = 0

    status: str = "running"  # running, completed, failed
    error_message: Optional[str] = None
