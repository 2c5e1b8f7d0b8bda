"""
Inventory Scanner Service - sweep orchestration and scheduling.

Walks the configured sites and ranges, port scans each range, fingerprints
the alive hosts and pushes the resulting assets to the inventory system.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Iterator, Optional

from ._types import AssetRecord, HostRecord, IPAddress, ScanProfile, ScanSummary, now_utc
from .config import ScannerConfig, Site, parse_duration
from .discovery import PortScanner
from .exceptions import InvalidRange, InventoryPushError
from .fingerprint import FingerprintEngine
from .inventory import GLPIClient
from .ranges import iter_cidr

logger = logging.getLogger(__name__)


def filter_blacklisted(addresses: Iterator[IPAddress], site: Site) -> Iterator[IPAddress]:
    """Drop addresses covered by the site's blacklist."""
    blacklist = site.blacklisted_networks()
    if not blacklist:
        return addresses
    return (
        address for address in addresses
        if not any(address.version == net.version and address in net for net in blacklist)
    )


class InventoryScannerService:
    """
    Main inventory scanner service.

    One run_scan() call is one sweep over every configured range under a
    single run deadline. start() repeats sweeps on the scheduler tick
    until stop() is called.
    """

    def __init__(
        self,
        config: ScannerConfig,
        engine: Optional[FingerprintEngine] = None,
        inventory: Optional[GLPIClient] = None,
        scanner_factory: Callable[[ScanProfile], PortScanner] = PortScanner,
    ):
        """
        Initialize scanner service.

        Args:
            config: Scanner configuration
            engine: Fingerprint engine (built from config if omitted)
            inventory: Inventory push client (built from config.glpi when
                a base URL is configured)
            scanner_factory: Builds the port scanner for a profile
        """
        self.config = config
        self.engine = engine or FingerprintEngine(config.fingerprint_config())
        if inventory is None and config.glpi.enabled:
            inventory = GLPIClient(config.glpi)
        self.inventory = inventory
        self.scanner_factory = scanner_factory

        self._running = False
        self._shutdown_event = asyncio.Event()
        self._scan_lock = asyncio.Lock()
        self.last_summary: Optional[ScanSummary] = None

    async def start(self) -> None:
        """Start the scheduler loop (returns at once if it is disabled)."""
        if not self.config.scheduler.enabled:
            logger.info("Scheduler disabled")
            return

        try:
            tick = parse_duration(self.config.scheduler.tick)
        except ValueError as e:
            logger.error(f"Invalid scheduler tick {self.config.scheduler.tick!r}: {e}")
            return
        if tick <= 0:
            logger.error(f"Invalid scheduler tick {self.config.scheduler.tick!r}")
            return

        logger.info(f"Starting Inventory Scanner Service (tick {tick:g}s)")
        self._running = True
        self._shutdown_event.clear()
        await self._main_loop(tick)

    async def stop(self) -> None:
        """Stop the scheduler loop and release network resources."""
        logger.info("Stopping Inventory Scanner Service")
        self._running = False
        self._shutdown_event.set()
        await self.close()

    async def close(self) -> None:
        await self.engine.close()
        if self.inventory is not None:
            await self.inventory.close()

    async def _main_loop(self, tick: float) -> None:
        """Run a sweep at the end of every tick until shutdown."""
        logger.info("Scheduler loop started")

        while self._running:
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=tick)
                # Shutdown requested
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_scan(triggered_by="schedule")
            except Exception as e:
                logger.error(f"Scheduled scan failed: {e}")

        logger.info("Scheduler loop stopped")

    async def run_scan(
        self,
        range_filter: Optional[str] = None,
        triggered_by: str = "manual",
    ) -> ScanSummary:
        """
        Run one sweep over the configured ranges.

        Args:
            range_filter: Only scan the range with exactly this CIDR
            triggered_by: Who triggered the scan (manual, schedule)

        Returns:
            Scan summary with the classified assets
        """
        async with self._scan_lock:
            summary = ScanSummary(scan_id=str(uuid.uuid4()), triggered_by=triggered_by)
            logger.info(f"Starting scan (id={summary.scan_id}, triggered_by={triggered_by})")

            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.config.run_timeout_seconds

            try:
                for site in self.config.sites:
                    for scan_range in site.ranges:
                        if range_filter and scan_range.cidr != range_filter:
                            continue
                        if self._shutdown_event.is_set() or loop.time() >= deadline:
                            logger.warning(f"Run deadline reached, skipping {scan_range.cidr}")
                            summary.ranges_failed.append(scan_range.cidr)
                            continue
                        await self._scan_range(site, scan_range.cidr, scan_range.profile, deadline, summary)

                if self.inventory is not None:
                    await self._push_assets(summary)

                summary.status = "completed"
            except Exception as e:
                logger.error(f"Scan failed: {e}")
                summary.status = "failed"
                summary.error_message = str(e)

            summary.completed_at = now_utc()
            logger.info(
                f"Scan completed: {len(summary.ranges_scanned)} ranges, "
                f"{summary.hosts_probed} hosts probed, {summary.hosts_alive} alive, "
                f"{len(summary.assets)} assets, {summary.pushed} pushed"
            )
            self.last_summary = summary
            return summary

    async def _scan_range(
        self,
        site: Site,
        cidr: str,
        profile_name: str,
        deadline: float,
        summary: ScanSummary,
    ) -> None:
        profile = self.config.get_profile(profile_name)
        if profile is None:
            logger.error(f"Profile {profile_name} not found for range {cidr} (site {site.name})")
            summary.ranges_failed.append(cidr)
            return

        try:
            addresses = filter_blacklisted(iter_cidr(cidr), site)
        except InvalidRange as e:
            logger.error(f"Skipping range for site {site.name}: {e}")
            summary.ranges_failed.append(cidr)
            return

        loop = asyncio.get_running_loop()
        scanner = self.scanner_factory(profile)
        logger.info(f"Scanning {cidr} (site {site.name}, profile {profile_name})")
        hosts = await scanner.scan(
            addresses,
            cancel=self._shutdown_event,
            deadline=max(deadline - loop.time(), 0),
        )
        summary.ranges_scanned.append(cidr)
        summary.hosts_probed += len(hosts)

        alive = [h for h in hosts if h.alive]
        summary.hosts_alive += len(alive)
        for host in sorted(alive, key=lambda h: (h.address.version, int(h.address))):
            asset = await self._fingerprint(host, profile, deadline)
            if asset is None:
                break
            summary.assets.append(asset)

    async def _fingerprint(
        self,
        host: HostRecord,
        profile: ScanProfile,
        deadline: float,
    ) -> Optional[AssetRecord]:
        """Fingerprint one host within the run deadline (None when out of time)."""
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0 or self._shutdown_event.is_set():
            logger.warning(f"Run deadline reached before fingerprinting {host.address}")
            return None
        try:
            asset = await asyncio.wait_for(self.engine.fingerprint(host, profile), timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning(f"Run deadline reached while fingerprinting {host.address}")
            return None

        logger.info(
            f"classified {host.address} type={asset.type.value} vendor={asset.vendor} "
            f"model={asset.model} ports={host.port_list}"
        )
        return asset

    async def _push_assets(self, summary: ScanSummary) -> None:
        for asset in summary.assets:
            try:
                await self.inventory.upsert_asset(asset)
                summary.pushed += 1
            except InventoryPushError as e:
                summary.push_failures += 1
                logger.error(f"Inventory push failed for {asset.address}: {e}")
