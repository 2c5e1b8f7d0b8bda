"""
Exceptions raised by the inventory scanner.

Only range parsing failures cross the scanner/fingerprint boundary.
Probe failures (refused or timed out dials, SNMP and HTTP errors, neighbor
cache misses) are absorbed where they happen and show up as missing data.
"""


class ScannerError(Exception):
    """Base class for inventory scanner errors."""


class InvalidRange(ScannerError):
    """A range string does not parse as a CIDR prefix."""

    def __init__(self, cidr: str, reason: str = ""):
        self.cidr = cidr
        self.reason = reason
        message = f"invalid range {cidr!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConfigError(ScannerError):
    """Configuration could not be loaded."""


class InventoryPushError(ScannerError):
    """An asset could not be delivered to the inventory system."""

    def __init__(self, message: str, status: int = 0):
        self.status = status
        super().__init__(message)
