"""
TCP connect port scanning.

A fixed pool of worker tasks pulls addresses from a bounded queue and
tries every configured port on each address in order. Workers hand their
HostRecords to a single collector task, which is the only writer of the
result list.

Cancellation (an asyncio.Event and/or an overall deadline) is not an
error: the scan stops feeding addresses, aborts in-flight dials, and
returns whatever records were completed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable, Optional

from .._types import HostRecord, IPAddress, ScanProfile
from ..ranges import iter_cidr
from .arp import local_networks, resolve_mac

logger = logging.getLogger(__name__)

# Marks the end of the results stream for the collector
_DONE = object()


class PortScanner:
    """
    Concurrent TCP connect scanner.

    Exactly profile.max_workers probe sequences run at once. Individual
    dial failures, timeouts and MAC lookup misses are encoded in the
    returned HostRecords, never raised.
    """

    def __init__(self, profile: Optional[ScanProfile] = None, resolve_mac: bool = True):
        """
        Initialize the scanner.

        Args:
            profile: Scan profile; zero/empty fields take the defaults
            resolve_mac: Look up hardware addresses for alive hosts
        """
        self.profile = (profile or ScanProfile()).with_defaults()
        self.resolve_mac = resolve_mac
        self._networks = None

    @property
    def name(self) -> str:
        return "tcp-connect"

    async def scan_cidr(
        self,
        cidr: str,
        cancel: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ) -> list[HostRecord]:
        """
        Scan every address of a CIDR range.

        Raises InvalidRange before any probing if the range is malformed.
        """
        addresses = iter_cidr(cidr)
        logger.info(
            f"Scanning {cidr} on ports {self.profile.ports} "
            f"({self.profile.max_workers} workers, {self.profile.timeout_ms} ms timeout)"
        )
        return await self.scan(addresses, cancel=cancel, deadline=deadline)

    async def scan(
        self,
        addresses: Iterable[IPAddress],
        cancel: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ) -> list[HostRecord]:
        """
        Probe addresses with a bounded worker pool.

        Args:
            addresses: Addresses to probe (consumed lazily)
            cancel: Event that stops the scan when set; only read, never set here
            deadline: Seconds the whole scan may take

        Returns:
            HostRecords completed before the scan finished or was cancelled,
            in no particular order
        """
        worker_count = self.profile.max_workers

        if self.resolve_mac and self._networks is None:
            self._networks = local_networks()

        # Private to this call; the caller's event is only watched, never set
        stop = asyncio.Event()

        jobs: asyncio.Queue = asyncio.Queue(maxsize=worker_count)
        results: asyncio.Queue = asyncio.Queue()
        collected: list[HostRecord] = []

        collector = asyncio.create_task(self._collect(results, collected))
        producer = asyncio.create_task(self._produce(addresses, jobs, worker_count, stop))
        workers = [
            asyncio.create_task(self._worker(jobs, results, stop))
            for _ in range(worker_count)
        ]
        all_workers = asyncio.gather(*workers)
        waiters = {all_workers}
        cancel_waiter = None
        if cancel is not None:
            cancel_waiter = asyncio.create_task(cancel.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=deadline,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if all_workers not in done:
                logger.info("Scan cancelled, returning partial results")
                stop.set()
        finally:
            pending = [producer, *workers]
            if cancel_waiter is not None:
                pending.append(cancel_waiter)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, all_workers, return_exceptions=True)
            results.put_nowait(_DONE)
            await collector

        alive = sum(1 for r in collected if r.alive)
        logger.info(f"Scan finished: {len(collected)} hosts probed, {alive} alive")
        return collected

    async def _produce(
        self,
        addresses: Iterable[IPAddress],
        jobs: asyncio.Queue,
        worker_count: int,
        stop: asyncio.Event,
    ) -> None:
        """Feed addresses to the workers, then close the queue."""
        for address in addresses:
            if stop.is_set():
                break
            await jobs.put(address)
        # One sentinel per worker closes the queue
        for _ in range(worker_count):
            await jobs.put(None)

    async def _worker(
        self,
        jobs: asyncio.Queue,
        results: asyncio.Queue,
        stop: asyncio.Event,
    ) -> None:
        while True:
            address = await jobs.get()
            if address is None or stop.is_set():
                return
            record = await self.probe_host(address)
            results.put_nowait(record)

    async def _collect(self, results: asyncio.Queue, collected: list[HostRecord]) -> None:
        while True:
            item = await results.get()
            if item is _DONE:
                return
            collected.append(item)

    async def probe_host(self, address: IPAddress) -> HostRecord:
        """Try every configured port on one address, sequentially."""
        open_ports: dict[int, float] = {}
        for port in self.profile.ports:
            latency = await self.probe_port(address, port)
            if latency is not None:
                open_ports[port] = latency

        alive = bool(open_ports)
        mac_address = ""
        if alive and self.resolve_mac:
            mac_address = await resolve_mac(address, self._networks or [])

        if alive:
            logger.debug(f"{address} alive, open ports {sorted(open_ports)}")
        return HostRecord(
            address=address,
            alive=alive,
            open_ports=open_ports,
            mac_address=mac_address,
        )

    async def probe_port(self, address: IPAddress, port: int) -> Optional[float]:
        """
        Attempt one TCP connect.

        Returns the connect latency in seconds, or None if the port did
        not accept a connection within the profile timeout.
        """
        start = time.monotonic()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(str(address), port),
                timeout=self.profile.timeout,
            )
        except (OSError, asyncio.TimeoutError):
            return None

        latency = time.monotonic() - start
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return latency
