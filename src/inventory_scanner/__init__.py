"""
Inventory Scanner - network discovery and fingerprinting for asset inventory.

Sweeps configured CIDR ranges with a bounded TCP connect scanner,
identifies each live host from SNMP, HTTP and open-port signals, and
pushes the normalized asset records to GLPI.

Pipeline:
    ranges -> discovery.PortScanner -> fingerprint.FingerprintEngine
    -> normalizer -> inventory.GLPIClient
"""

__version__ = "1.0.0"

from ._types import (
    AssetRecord,
    AssetType,
    HostRecord,
    ScanProfile,
    ScanSummary,
)
from .exceptions import (
    ConfigError,
    InvalidRange,
    InventoryPushError,
    ScannerError,
)

__all__ = [
    "__version__",
    "AssetRecord",
    "AssetType",
    "HostRecord",
    "ScanProfile",
    "ScanSummary",
    "ConfigError",
    "InvalidRange",
    "InventoryPushError",
    "ScannerError",
]
