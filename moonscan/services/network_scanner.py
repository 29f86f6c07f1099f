"""Two-phase Moonraker discovery: bulk TCP port probing, then API probing."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from ..errors import ApiFailure, InvalidSubnet
from ..models.config import ScannerConfig, SubnetConfig
from ..models.printer import PrinterFlags
from ..models.scan_result import (
    ConnectivityStatus,
    DeviceStatus,
    HostRecord,
    HostStatusResponse,
    ScanProgress,
    ScanResult,
    address_sort_key,
)
from .moonraker_client import MoonrakerClient
from .port_prober import PortProber
from .status_resolver import resolve_device_status
from .subnet import expand_subnets

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ScanProgress], None]


class NetworkScanner:
    """Finds Moonraker hosts on configured subnets and classifies their printers.

    Phase one probes the service port of every candidate address under the
    port ceiling; phase two queries the API of the hosts with an open port
    under the (smaller) API ceiling. Both phases run in batches with a short
    pause in between. The scanner keeps no state between calls.
    """

    def __init__(
        self,
        config: ScannerConfig | None = None,
        port_prober: PortProber | None = None,
        api_client: MoonrakerClient | None = None,
    ):
        self.config = config or ScannerConfig()
        self.port_prober = port_prober or PortProber(self.config)
        self.api_client = api_client

    @asynccontextmanager
    async def api_session(self) -> AsyncIterator[MoonrakerClient]:
        """Yield the injected API client, or a fresh one closed on exit."""
        if self.api_client is not None:
            yield self.api_client
            return
        async with MoonrakerClient(self.config) as client:
            yield client

    async def scan(
        self,
        subnets: Iterable[SubnetConfig],
        progress_callback: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ScanResult:
        """Scan all enabled subnets and return the printers found.

        Raises InvalidSubnet before any probing if one of the enabled subnets
        is malformed or too large. Per-host failures only exclude that host.
        ``cancel_event`` is honoured between batches.
        """
        start_time = datetime.now()
        progress = ScanProgress()

        try:
            address_map = expand_subnets(subnets)
        except InvalidSubnet as e:
            logger.error(f"Scan aborted: {e}")
            progress.error(str(e))
            self._report(progress_callback, progress)
            raise

        addresses = list(address_map)
        progress.total_ips = len(addresses)
        self._report(progress_callback, progress)
        logger.info(f"Scanning {len(addresses)} addresses on port {self.config.port}")

        open_addresses, cancelled = await self._port_phase(
            addresses, progress, progress_callback, cancel_event
        )
        logger.info(f"Port {self.config.port} open on {len(open_addresses)} hosts")

        hosts: list[HostRecord] = []
        if not cancelled:
            hosts, cancelled = await self._api_phase(
                open_addresses, address_map, progress, progress_callback, cancel_event
            )

        hosts.sort(key=lambda h: address_sort_key(h.ip_address))
        online = sum(1 for h in hosts if h.is_online)

        if cancelled:
            progress.cancel()
            logger.info(f"Scan cancelled after finding {online} hosts")
        else:
            progress.complete(online)
            logger.info(f"Scan completed: {online} online of {len(addresses)} addresses")
        self._report(progress_callback, progress)

        return ScanResult(
            hosts=hosts,
            total_hosts=len(addresses),
            online_hosts=online,
            scan_progress=progress.percentage,
            scan_time=start_time,
            duration_seconds=(datetime.now() - start_time).total_seconds(),
            cancelled=cancelled,
        )

    async def _port_phase(
        self,
        addresses: list[str],
        progress: ScanProgress,
        progress_callback: ProgressCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> tuple[list[str], bool]:
        open_addresses: list[str] = []
        scanned = 0

        def collect(batch: Sequence[str], results: list[Any]) -> None:
            nonlocal scanned
            for address, is_open in zip(batch, results):
                if is_open is True:
                    open_addresses.append(address)
            scanned += len(batch)
            progress.update_port_scanning(scanned)
            self._report(progress_callback, progress)

        cancelled = await self._run_batches(
            addresses,
            self.port_prober.probe,
            self.config.port_concurrency,
            collect,
            cancel_event,
        )
        return open_addresses, cancelled

    async def _api_phase(
        self,
        addresses: list[str],
        address_map: dict[str, str],
        progress: ScanProgress,
        progress_callback: ProgressCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> tuple[list[HostRecord], bool]:
        hosts: list[HostRecord] = []
        checked = 0
        if not addresses:
            return hosts, False

        async with self.api_session() as client:

            async def probe(address: str) -> HostRecord | None:
                return await self._probe_api(client, address, address_map.get(address, ""))

            def collect(batch: Sequence[str], results: list[Any]) -> None:
                nonlocal checked
                hosts.extend(r for r in results if isinstance(r, HostRecord))
                checked += len(batch)
                found = sum(1 for h in hosts if h.is_online)
                progress.update_api_checking(checked, len(addresses), found)
                self._report(progress_callback, progress)

            cancelled = await self._run_batches(
                addresses, probe, self.config.api_concurrency, collect, cancel_event
            )
        return hosts, cancelled

    async def _run_batches(
        self,
        items: list[str],
        worker: Callable[[str], Awaitable[Any]],
        batch_size: int,
        on_batch: Callable[[Sequence[str], list[Any]], None],
        cancel_event: asyncio.Event | None,
    ) -> bool:
        """Run ``worker`` over ``items`` one batch at a time. Returns True if cancelled."""
        for start in range(0, len(items), batch_size):
            if cancel_event is not None and cancel_event.is_set():
                return True

            batch = items[start : start + batch_size]
            results = await asyncio.gather(*(worker(item) for item in batch), return_exceptions=True)
            for item, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.warning(f"Probe of {item} failed unexpectedly: {result!r}")
            on_batch(batch, results)

            if start + batch_size < len(items):
                await asyncio.sleep(self.config.batch_pause_seconds)
        return False

    async def _probe_api(
        self, client: MoonrakerClient, address: str, subnet: str
    ) -> HostRecord | None:
        """Build a host record for an address whose port is known to be open."""
        try:
            server_info = await client.probe_liveness(address)
        except ApiFailure as e:
            logger.debug(f"Liveness check failed: {e}")
            return None

        hostname = address
        try:
            printer_info = await client.probe_printer_info(address)
            if printer_info.hostname:
                hostname = printer_info.hostname
        except ApiFailure as e:
            logger.debug(f"No hostname for {address}: {e}")

        flags = None
        if not server_info.is_klippy_disconnected:
            flags = await self._probe_flags(client, address)

        device_status = resolve_device_status(True, server_info.klippy_state, flags)
        status = (
            ConnectivityStatus.OFFLINE
            if device_status == DeviceStatus.OFFLINE
            else ConnectivityStatus.ONLINE
        )
        return HostRecord(
            ip_address=address,
            hostname=hostname,
            original_hostname=hostname,
            subnet=subnet,
            status=status,
            device_status=device_status,
            moonraker_version=server_info.moonraker_version,
            klippy_state=server_info.klippy_state,
            printer_flags=flags,
            last_seen=datetime.now(),
            failed_attempts=0,
        )

    async def _probe_flags(self, client: MoonrakerClient, address: str) -> PrinterFlags | None:
        try:
            return await client.probe_flags(address)
        except ApiFailure as e:
            # Moonraker answered but the printer state did not; shown as standby
            logger.warning(f"Printer flags unavailable, reporting standby: {e}")
            return None

    async def scan_host(self, address: str, subnet: str = "") -> HostRecord | None:
        """Probe a single address; returns None if no Moonraker answers there."""
        if not await self.port_prober.probe(address):
            return None
        async with self.api_session() as client:
            return await self._probe_api(client, address, subnet)

    async def check_host(
        self, address: str, client: MoonrakerClient | None = None
    ) -> HostStatusResponse:
        """Check the current status of a known host."""
        if not await self.port_prober.probe(address):
            logger.debug(f"Status check: {address} unreachable")
            return HostStatusResponse(success=False, status=ConnectivityStatus.OFFLINE)

        if client is None:
            async with self.api_session() as session:
                return await self._check_api(session, address)
        return await self._check_api(client, address)

    async def _check_api(self, client: MoonrakerClient, address: str) -> HostStatusResponse:
        try:
            server_info = await client.probe_liveness(address)
        except ApiFailure as e:
            logger.debug(f"Status check: {e}")
            return HostStatusResponse(success=False, status=ConnectivityStatus.OFFLINE)

        if server_info.is_klippy_disconnected:
            return HostStatusResponse(
                success=False,
                status=ConnectivityStatus.OFFLINE,
                device_status=DeviceStatus.OFFLINE,
                moonraker_version=server_info.moonraker_version,
                klippy_state=server_info.klippy_state,
            )

        flags = await self._probe_flags(client, address)
        return HostStatusResponse(
            success=True,
            status=ConnectivityStatus.ONLINE,
            device_status=resolve_device_status(True, server_info.klippy_state, flags),
            moonraker_version=server_info.moonraker_version,
            klippy_state=server_info.klippy_state,
            printer_flags=flags,
        )

    @staticmethod
    def _report(progress_callback: ProgressCallback | None, progress: ScanProgress) -> None:
        if progress_callback is not None:
            progress_callback(progress.model_copy())
