"""
Hardware address resolution from the local neighbor (ARP) cache.

Only addresses on a subnet attached to one of the scanning host's
interfaces can have a cache entry. Resolution is best-effort: any failure
yields an empty string and is never treated as a signal of host state.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
import socket
from pathlib import Path
from typing import Iterable, Optional

import psutil

from .._types import IPAddress

logger = logging.getLogger(__name__)

PROC_NET_ARP = Path("/proc/net/arp")

# Linux:  ? (192.168.1.1) at aa:bb:cc:dd:ee:ff [ether] on eth0
# macOS:  ? (192.168.1.1) at 0:50:56:c0:0:8 on en0 ifscope [ethernet]
ARP_LINE_PATTERN = re.compile(
    r"(?:(\S+)\s+)?\(([0-9a-fA-F:.]+)\)\s+at\s+([0-9a-fA-F:-]+)"
)

EMPTY_MACS = frozenset({"00:00:00:00:00:00", "FF:FF:FF:FF:FF:FF"})


def normalize_mac(mac: str) -> str:
    """Upper-case, colon-separated MAC address (aa-bb-.. -> AA:BB:..)."""
    mac = mac.strip().replace("-", ":").upper()
    parts = mac.split(":")
    if len(parts) == 6:
        # macOS drops leading zeros (0:50:56:c0:0:8)
        mac = ":".join(p.zfill(2) for p in parts)
    return mac


def local_networks() -> list[ipaddress.IPv4Network | ipaddress.IPv6Network]:
    """Networks assigned to the scanning host's interfaces (loopback excluded)."""
    networks = []
    try:
        interfaces = psutil.net_if_addrs()
    except OSError as e:
        logger.debug(f"Could not list interfaces: {e}")
        return networks

    for iface, addrs in interfaces.items():
        for addr in addrs:
            if addr.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            if not addr.address or not addr.netmask:
                continue
            ip = addr.address.split("%", 1)[0]
            try:
                netmask = addr.netmask
                if addr.family == socket.AF_INET6:
                    # IPv6 networks only accept a prefix length
                    netmask = bin(int(ipaddress.IPv6Address(netmask))).count("1")
                network = ipaddress.ip_network(f"{ip}/{netmask}", strict=False)
            except ValueError:
                continue
            if network.is_loopback:
                continue
            networks.append(network)
    return networks


def is_on_attached_subnet(address: IPAddress, networks: Iterable) -> bool:
    return any(
        network.version == address.version and address in network
        for network in networks
    )


def parse_proc_net_arp(content: str, address: str) -> str:
    """
    Find an address in /proc/net/arp content.

    Format (header line first):
    IP address       HW type     Flags       HW address            Mask     Device
    192.168.1.1      0x1         0x2         aa:bb:cc:dd:ee:ff     *        eth0
    """
    for line in content.splitlines()[1:]:
        fields = line.split()
        if len(fields) >= 4 and fields[0] == address:
            mac = normalize_mac(fields[3])
            if len(mac) >= 17 and mac not in EMPTY_MACS:
                return mac
    return ""


def parse_arp_output(output: str, address: str) -> str:
    """Find an address in `arp -n` / `arp -an` output."""
    for line in output.splitlines():
        match = ARP_LINE_PATTERN.search(line)
        if not match or match.group(2) != address:
            continue
        mac = normalize_mac(match.group(3))
        if len(mac) >= 17 and mac not in EMPTY_MACS:
            return mac
    return ""


async def _arp_command(address: str) -> str:
    try:
        proc = await asyncio.create_subprocess_exec(
            "arp", "-n", address,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=2.0)
    except (FileNotFoundError, PermissionError, asyncio.TimeoutError) as e:
        logger.debug(f"arp lookup for {address} unavailable: {e}")
        return ""
    if proc.returncode != 0:
        return ""
    return parse_arp_output(stdout.decode(errors="replace"), address)


async def lookup_neighbor_cache(address: IPAddress) -> str:
    """Look an address up in the OS neighbor cache; empty string on a miss."""
    ip = str(address)
    try:
        content = PROC_NET_ARP.read_text()
    except OSError:
        content = None

    if content is not None:
        return parse_proc_net_arp(content, ip)
    return await _arp_command(ip)


async def resolve_mac(
    address: IPAddress,
    networks: Optional[Iterable] = None,
) -> str:
    """
    Best-effort MAC resolution for an alive host.

    Returns "" for cross-subnet addresses and on any lookup failure.
    """
    if networks is None:
        networks = local_networks()
    if not is_on_attached_subnet(address, networks):
        return ""
    try:
        return await lookup_neighbor_cache(address)
    except OSError as e:
        logger.debug(f"Neighbor cache lookup failed for {address}: {e}")
        return ""
