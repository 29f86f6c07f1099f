"""Background polling of stored hosts with device status change detection."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel, Field

from ..models.config import MonitorConfig, NotificationSettings
from ..models.scan_result import DeviceStatus, HostRecord
from .host_store import HostStore
from .network_scanner import NetworkScanner

logger = logging.getLogger(__name__)


class StatusChange(BaseModel):
    """A device status transition of one host between two polls."""

    ip_address: str
    hostname: str
    previous: DeviceStatus
    current: DeviceStatus
    changed_at: datetime = Field(default_factory=datetime.now)

    def describe(self) -> str:
        return f"{self.hostname} ({self.ip_address}): {self.previous.value} -> {self.current.value}"


class HostMonitor:
    """Periodically checks every stored host and reports status changes."""

    def __init__(
        self,
        scanner: NetworkScanner,
        store: HostStore,
        config: MonitorConfig | None = None,
        notifications: NotificationSettings | None = None,
        on_change: Callable[[StatusChange], None] | None = None,
    ):
        self.scanner = scanner
        self.store = store
        self.config = config or MonitorConfig()
        self.notifications = notifications or NotificationSettings()
        self.on_change = on_change
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_all(self) -> list[StatusChange]:
        """Check all stored hosts once. Returns the reportable status changes."""
        hosts = self.store.get_all_hosts()
        if not hosts:
            return []

        previous = {h.ip_address: h.device_status for h in hosts}
        semaphore = asyncio.Semaphore(self.scanner.config.api_concurrency)

        async with self.scanner.api_session() as client:

            async def check(host: HostRecord) -> HostRecord | None:
                async with semaphore:
                    response = await self.scanner.check_host(host.ip_address, client)
                return await self.store.apply_status_check(host.ip_address, response)

            results = await asyncio.gather(*(check(h) for h in hosts), return_exceptions=True)

        changes: list[StatusChange] = []
        for host, result in zip(hosts, results):
            if isinstance(result, Exception):
                logger.warning(f"Status check of {host.ip_address} failed: {result!r}")
                continue
            if result is None or result.device_status == previous[host.ip_address]:
                continue

            change = StatusChange(
                ip_address=result.ip_address,
                hostname=result.display_name,
                previous=previous[host.ip_address],
                current=result.device_status,
            )
            logger.info(f"Status change: {change.describe()}")
            if self.notifications.is_enabled(change.current.value):
                changes.append(change)
                if self.on_change is not None:
                    self.on_change(change)

        self.store.save()
        return changes

    def start(self) -> None:
        """Start polling in a background task of the running event loop."""
        if self.is_running:
            raise RuntimeError("Background monitoring is already running")
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop polling and wait for the current cycle to finish."""
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        await self._task
        self._task = None

    async def _run(self) -> None:
        logger.info(f"Monitoring {self.store.count} hosts every {self.config.interval_seconds}s")
        while self._stop_event is not None and not self._stop_event.is_set():
            try:
                await self.check_all()
            except Exception:
                logger.exception("Monitor cycle failed")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.interval_seconds)
            except TimeoutError:
                pass  # Next cycle
        logger.info("Background monitor stopped")
