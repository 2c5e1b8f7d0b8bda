"""
Device fingerprinting: SNMP system group, HTTP Server headers and
open-port heuristics combined into a classified asset record.
"""

from .engine import FingerprintEngine
from .snmp import SystemInfo, query_system_info
from .tables import (
    classify_description,
    extract_model,
    vendor_from_description,
    vendor_from_oid,
    vendor_from_server_header,
)

__all__ = [
    "FingerprintEngine",
    "SystemInfo",
    "query_system_info",
    "classify_description",
    "extract_model",
    "vendor_from_description",
    "vendor_from_oid",
    "vendor_from_server_header",
]
