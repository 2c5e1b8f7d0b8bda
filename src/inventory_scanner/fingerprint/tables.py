"""
Lookup tables for device fingerprinting.

All tables are ordered (pattern, result) pairs; the first match wins, so
precedence is the table order.
"""

from __future__ import annotations

from typing import Optional

from .._types import AssetType

# System MIB scalars queried in a single SNMP GET
OID_SYS_DESCR = "1.3.6.1.2.1.1.1.0"
OID_SYS_OBJECT_ID = "1.3.6.1.2.1.1.2.0"
OID_SYS_NAME = "1.3.6.1.2.1.1.5.0"

# sysDescr keyword cues -> (type, extract model?)
DESCRIPTION_TYPE_RULES: tuple[tuple[tuple[str, ...], AssetType, bool], ...] = (
    (("copier", "multifunction", "mfp"), AssetType.PERIPHERAL, True),
    (("printer",), AssetType.PRINTER, True),
    (("switch",), AssetType.NETWORK_EQUIPMENT, True),
    (("router",), AssetType.ROUTER, True),
    (("windows", "linux", "hardware:"), AssetType.COMPUTER, False),
)

# sysDescr keyword -> OS name (checked for Computer matches)
DESCRIPTION_OS_RULES: tuple[tuple[str, str], ...] = (
    ("windows", "Windows"),
    ("linux", "Linux"),
)

MODEL_MARKERS = ("Model:", "model:", "TYPE:")

DESCRIPTION_VENDORS: tuple[tuple[str, str], ...] = (
    ("cisco", "Cisco"),
    ("hp", "HP"),
    ("dell", "Dell"),
    ("lenovo", "Lenovo"),
    ("xerox", "Xerox"),
    ("canon", "Canon"),
    ("ricoh", "Ricoh"),
    ("epson", "Epson"),
    ("brother", "Brother"),
    ("kyocera", "Kyocera"),
    ("sharp", "Sharp"),
    ("konica", "Konica Minolta"),
    ("microsoft", "Microsoft"),
    ("vmware", "VMware"),
)

# Enterprise OIDs (.1.3.6.1.4.1.<enterprise-number>)
ENTERPRISE_OID_VENDORS: tuple[tuple[str, str], ...] = (
    (".1.3.6.1.4.1.9", "Cisco"),
    (".1.3.6.1.4.1.11", "HP"),
    (".1.3.6.1.4.1.674", "Dell"),
    (".1.3.6.1.4.1.2699", "Xerox"),
    (".1.3.6.1.4.1.1602", "Canon"),
    (".1.3.6.1.4.1.367", "Ricoh"),
    (".1.3.6.1.4.1.1248", "Epson"),
    (".1.3.6.1.4.1.2435", "Brother"),
    (".1.3.6.1.4.1.1347", "Kyocera"),
)

# HTTP Server header keyword -> vendor. Product names come before the
# generic vendor names they contain (tomcat before apache, iis before microsoft).
SERVER_HEADER_VENDORS: tuple[tuple[str, str], ...] = (
    ("tomcat", "Apache Tomcat"),
    ("jetty", "Eclipse Jetty"),
    ("weblogic", "Oracle WebLogic"),
    ("websphere", "IBM WebSphere"),
    ("iis", "Microsoft IIS"),
    ("lighttpd", "Lighttpd"),
    ("nginx", "Nginx"),
    ("apache", "Apache"),
    ("microsoft", "Microsoft"),
    ("canon", "Canon"),
    ("xerox", "Xerox"),
    ("ricoh", "Ricoh"),
    ("hp", "HP"),
    ("dell", "Dell"),
    ("cisco", "Cisco"),
    ("brother", "Brother"),
    ("epson", "Epson"),
    ("kyocera", "Kyocera"),
    ("sharp", "Sharp"),
    ("konica", "Konica Minolta"),
)


def _match_keyword(text: str, table: tuple[tuple[str, str], ...]) -> str:
    text_lower = text.lower()
    for keyword, vendor in table:
        if keyword in text_lower:
            return vendor
    return ""


def vendor_from_description(sys_descr: str) -> str:
    """Vendor from an SNMP system description, or "" if none matches."""
    return _match_keyword(sys_descr, DESCRIPTION_VENDORS)


def vendor_from_oid(sys_object_id: str) -> str:
    """Vendor from an sysObjectID enterprise prefix, or ""."""
    oid = sys_object_id.strip()
    if oid and not oid.startswith("."):
        oid = "." + oid
    for prefix, vendor in ENTERPRISE_OID_VENDORS:
        if oid == prefix or oid.startswith(prefix + "."):
            return vendor
    return ""


def vendor_from_server_header(server: str) -> str:
    """
    Vendor from an HTTP Server header.

    Falls back to the product token before the first "/" of the header
    when it is longer than two characters.
    """
    vendor = _match_keyword(server, SERVER_HEADER_VENDORS)
    if vendor:
        return vendor

    parts = server.split()
    if parts:
        product = parts[0].split("/", 1)[0]
        if len(product) > 2:
            return product
    return ""


def extract_model(sys_descr: str) -> str:
    """
    Model from an SNMP system description.

    Text after the first "Model:", "model:" or "TYPE:" marker up to the
    next comma, semicolon or newline; otherwise the first three words.
    """
    for marker in MODEL_MARKERS:
        idx = sys_descr.find(marker)
        if idx == -1:
            continue
        rest = sys_descr[idx + len(marker):]
        end = min((i for i in (rest.find(c) for c in ",;\n") if i != -1), default=len(rest))
        return rest[:end].strip()

    return " ".join(sys_descr.split()[:3])


def classify_description(sys_descr: str) -> tuple[Optional[AssetType], bool, str]:
    """
    Device type cues from an SNMP system description.

    Returns (type or None, whether a model should be extracted, OS name).
    """
    descr_lower = sys_descr.lower()
    for keywords, asset_type, wants_model in DESCRIPTION_TYPE_RULES:
        if any(k in descr_lower for k in keywords):
            os_name = ""
            if asset_type == AssetType.COMPUTER:
                os_name = _match_keyword(descr_lower, DESCRIPTION_OS_RULES)
            return asset_type, wants_model, os_name
    return None, False, ""
