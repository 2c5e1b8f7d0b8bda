"""
Fingerprint engine - turns a host record into a classified asset record.

Processing order is fixed:
1. Record initialised as Unknown with the open ports as a diagnostic attribute
2. SNMP system group query (if enabled and port 161 is open)
3. HTTP probe on port 80 and HTTPS probe on port 443 (each if open)
4. Port-heuristic classification if the type is still Unknown
5. Normalization

Every probe failure is absorbed: the affected fields are simply left unset.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp
from pysnmp.hlapi.v3arch.asyncio import SnmpEngine

from .._types import AssetRecord, AssetType, HostRecord, IPAddress, ScanProfile
from ..classifier import classify_by_ports
from ..config import FingerprintConfig
from ..normalizer import normalize_asset
from .snmp import SystemInfo, query_system_info
from .tables import (
    classify_description,
    extract_model,
    vendor_from_description,
    vendor_from_oid,
    vendor_from_server_header,
)

logger = logging.getLogger(__name__)

SNMP_PORT = 161
HTTP_PORTS = ((80, "http"), (443, "https"))


class FingerprintEngine:
    """
    Multi-protocol device fingerprinting.

    Holds no per-call state: one engine (and its HTTP session) can serve
    many concurrent fingerprint() calls. Use as an async context manager
    or call close() when done.
    """

    def __init__(
        self,
        config: Optional[FingerprintConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize fingerprint engine.

        Args:
            config: Probe settings (SNMP community, timeouts, HTTP precedence)
            session: Shared aiohttp session (created on first use if omitted)
        """
        self.config = config or FingerprintConfig()
        self._session = session
        self._owns_session = session is None
        self._snmp_engine: Optional[SnmpEngine] = None

    async def __aenter__(self) -> "FingerprintEngine":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the shared session (certificate validation off)."""
        if self._session is None or self._session.closed:
            # Device web UIs use self-signed certificates
            connector = aiohttp.TCPConnector(ssl=False)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.config.http_timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this engine created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def fingerprint(
        self,
        host: HostRecord,
        profile: Optional[ScanProfile] = None,
    ) -> AssetRecord:
        """
        Build a normalized asset record from a scanned host.

        Args:
            host: An alive HostRecord from the port scanner
            profile: Profile the host was scanned with; its protocol list
                can switch the snmp and http probes off

        Returns:
            AssetRecord whose type is never Unknown
        """
        asset = AssetRecord(
            address=host.address,
            mac_address=host.mac_address,
            type=AssetType.UNKNOWN,
            attributes={"open_ports": str(host.port_list)},
        )
        logger.debug(f"Fingerprinting {host.address} with ports {host.port_list}")

        if self.config.enable_snmp and (profile is None or profile.protocol_enabled("snmp")):
            if host.has_port(SNMP_PORT):
                info = await self._query_snmp(host.address)
                if info is not None:
                    self.apply_snmp(asset, info)
            else:
                logger.debug(f"Port 161 not open on {host.address}, skipping SNMP")

        probe_http = profile is None or profile.protocol_enabled("http")
        for port, scheme in HTTP_PORTS:
            if not probe_http or not host.has_port(port):
                continue
            response = await self._fetch_http(host.address, scheme)
            if response is not None:
                status, server = response
                self.apply_http(asset, scheme, status, server)

        if asset.type == AssetType.UNKNOWN:
            asset.type = classify_by_ports(host.open_ports)
            logger.debug(f"Port-based classification for {host.address}: {asset.type.value}")

        return normalize_asset(asset)

    # -------------------------------------------------------------------------
    # SNMP
    # -------------------------------------------------------------------------

    async def _query_snmp(self, address: IPAddress) -> Optional[SystemInfo]:
        if self._snmp_engine is None:
            self._snmp_engine = SnmpEngine()
        logger.debug(f"SNMP query to {address}")
        info = await query_system_info(
            self._snmp_engine,
            address,
            community=self.config.snmp_community,
            timeout=self.config.snmp_timeout,
            retries=self.config.snmp_retries,
        )
        if info is not None:
            logger.debug(f"SNMP answered from {address}: {info}")
        return info

    def apply_snmp(self, asset: AssetRecord, info: SystemInfo) -> None:
        """Fold SNMP system group values into an asset record."""
        if info.sys_descr:
            asset.attributes["snmp_sysdescr"] = info.sys_descr

            asset_type, wants_model, os_name = classify_description(info.sys_descr)
            if asset_type is not None:
                asset.type = asset_type
                if wants_model:
                    asset.model = extract_model(info.sys_descr)
                if os_name:
                    asset.os_name = os_name

            vendor = vendor_from_description(info.sys_descr)
            if vendor:
                asset.vendor = vendor

        if info.sys_name:
            if not asset.hostname:
                asset.hostname = info.sys_name
            asset.attributes["snmp_sysname"] = info.sys_name

        if info.sys_object_id:
            asset.attributes["snmp_sysobjectid"] = info.sys_object_id
            # A description keyword match takes precedence
            if not asset.vendor:
                asset.vendor = vendor_from_oid(info.sys_object_id)

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    async def _fetch_http(self, address: IPAddress, scheme: str) -> Optional[tuple[int, str]]:
        """
        GET the device root page.

        Returns (status, Server header or "") or None on failure.
        """
        host = f"[{address}]" if address.version == 6 else str(address)
        url = f"{scheme}://{host}/"
        logger.debug(f"HTTP probe {url}")
        try:
            session = await self._get_session()
            async with session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=self.config.http_timeout),
            ) as response:
                return response.status, response.headers.get("Server", "")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            logger.debug(f"HTTP probe {url} failed: {e}")
            return None

    def apply_http(self, asset: AssetRecord, scheme: str, status: int, server: str) -> None:
        """Fold an HTTP response into an asset record."""
        if server:
            asset.attributes["http_server"] = server
            if not asset.vendor:
                asset.vendor = vendor_from_server_header(server)
            if not asset.model:
                asset.model = server

        asset.attributes[f"http_{scheme}_status"] = str(status)

        if 200 <= status < 400:
            # A web UI marks a peripheral; this overrides SNMP unless disabled
            if self.config.http_overrides_snmp or asset.type == AssetType.UNKNOWN:
                asset.type = AssetType.PERIPHERAL
