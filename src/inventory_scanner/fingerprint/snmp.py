"""
SNMP v2c system group query.

One GET request for sysDescr, sysName and sysObjectID. Any transport or
protocol failure returns None; the caller treats that as "no SNMP data".
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from pysnmp.hlapi.v3arch.asyncio import (
    CommunityData,
    ContextData,
    ObjectIdentity,
    ObjectType,
    SnmpEngine,
    Udp6TransportTarget,
    UdpTransportTarget,
    get_cmd,
)
from pysnmp.error import PySnmpError
from pysnmp.proto.rfc1905 import EndOfMibView, NoSuchInstance, NoSuchObject

from .._types import IPAddress
from .tables import OID_SYS_DESCR, OID_SYS_NAME, OID_SYS_OBJECT_ID

logger = logging.getLogger(__name__)

_MISSING = (NoSuchObject, NoSuchInstance, EndOfMibView)


@dataclass
class SystemInfo:
    """Values retrieved from the SNMPv2-MIB system group ("" if absent)."""
    sys_descr: str = ""
    sys_name: str = ""
    sys_object_id: str = ""


def decode_value(value: Any) -> str:
    """Convert an SNMP value to a clean string."""
    if value is None or isinstance(value, _MISSING):
        return ""
    if hasattr(value, "asOctets"):
        octets = value.asOctets()
        try:
            result = octets.decode("utf-8")
        except UnicodeDecodeError:
            result = octets.decode("latin-1")
    elif hasattr(value, "prettyPrint"):
        result = value.prettyPrint()
    else:
        result = str(value)
    return result.replace("\x00", "").strip()


async def query_system_info(
    engine: SnmpEngine,
    address: IPAddress,
    community: str = "public",
    timeout: float = 2.0,
    retries: int = 1,
    port: int = 161,
) -> Optional[SystemInfo]:
    """
    Query sysDescr, sysName and sysObjectID in one request.

    Returns None on any connection or query failure.
    """
    transport_cls = Udp6TransportTarget if address.version == 6 else UdpTransportTarget
    try:
        transport = await transport_cls.create(
            (str(address), port),
            timeout=timeout,
            retries=retries,
        )
        error_indication, error_status, error_index, var_binds = await asyncio.wait_for(
            get_cmd(
                engine,
                CommunityData(community, mpModel=1),
                transport,
                ContextData(),
                ObjectType(ObjectIdentity(OID_SYS_DESCR)),
                ObjectType(ObjectIdentity(OID_SYS_NAME)),
                ObjectType(ObjectIdentity(OID_SYS_OBJECT_ID)),
            ),
            # Allow for the retry on top of the per-request timeout
            timeout=timeout * (retries + 1) + 1,
        )
    except (OSError, asyncio.TimeoutError) as e:
        logger.debug(f"SNMP connection to {address} failed: {e}")
        return None
    except PySnmpError as e:
        # pysnmp surfaces transport setup problems as its own error types
        logger.debug(f"SNMP query to {address} failed: {e}")
        return None

    if error_indication:
        logger.debug(f"SNMP query to {address} failed: {error_indication}")
        return None
    if error_status:
        logger.debug(f"SNMP query to {address} returned {error_status.prettyPrint()}")
        return None

    # GET responses carry the varbinds in request order
    values = [decode_value(var_bind[1]) for var_bind in var_binds]
    values += [""] * (3 - len(values))
    return SystemInfo(
        sys_descr=values[0],
        sys_name=values[1],
        sys_object_id=values[2],
    )
