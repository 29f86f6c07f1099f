"""Host record persistence and merging of scan and status-check results."""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path

from ..models.scan_result import (
    ConnectivityStatus,
    HostRecord,
    HostStatusResponse,
    ScanResult,
    address_sort_key,
)

logger = logging.getLogger(__name__)

DEFAULT_HOSTS_PATH = "hosts.json"
DEFAULT_FAILURE_THRESHOLD = 3


class HostStore:
    """Keeps the last known record of every printer host, keyed by IP address.

    Status checks are debounced: a host only flips to offline after
    ``failure_threshold`` consecutive failed checks, and any success resets
    the counter. Writes to one host are serialized with a per-host lock.
    """

    def __init__(
        self,
        path: Path | str = DEFAULT_HOSTS_PATH,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ):
        self.path = Path(path)
        self.failure_threshold = failure_threshold
        self._hosts: dict[str, HostRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._loaded = False

    def load(self) -> None:
        """Load host records from file."""
        self._hosts = {}
        self._loaded = True

        if not self.path.exists():
            logger.debug(f"No hosts file at {self.path}")
            return

        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in hosts file: {e}")
            return
        except OSError as e:
            logger.error(f"Error loading hosts: {e}")
            return

        hosts = data.get("hosts", {}) if isinstance(data, dict) else None
        if not isinstance(hosts, dict):
            logger.error(f"Unexpected hosts file layout in {self.path}, starting empty")
            return

        for ip, host_data in hosts.items():
            try:
                self._hosts[ip] = HostRecord.model_validate(host_data)
            except Exception as e:
                logger.warning(f"Invalid host entry for {ip}: {e}")

        logger.debug(f"Loaded {len(self._hosts)} hosts")

    def save(self) -> bool:
        """Save host records to file."""
        try:
            data = {
                "hosts": {ip: host.model_dump(mode="json") for ip, host in self._hosts.items()}
            }

            with open(self.path, "w") as f:
                json.dump(data, f, indent=2, default=str)

            logger.debug(f"Saved {len(self._hosts)} hosts")
            return True

        except (OSError, TypeError) as e:
            logger.error(f"Error saving hosts: {e}")
            return False

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _lock(self, ip: str) -> asyncio.Lock:
        return self._locks.setdefault(ip, asyncio.Lock())

    def get_host(self, ip: str) -> HostRecord | None:
        """Get a host by IP address."""
        self._ensure_loaded()
        return self._hosts.get(ip)

    def get_all_hosts(self) -> list[HostRecord]:
        """All hosts ordered by address."""
        self._ensure_loaded()
        return sorted(self._hosts.values(), key=lambda h: address_sort_key(h.ip_address))

    @property
    def count(self) -> int:
        """Number of stored hosts."""
        self._ensure_loaded()
        return len(self._hosts)

    @property
    def online_count(self) -> int:
        self._ensure_loaded()
        return sum(1 for h in self._hosts.values() if h.is_online)

    async def add_host(self, record: HostRecord) -> bool:
        """Add or replace a host. Returns True if the host was not known before."""
        self._ensure_loaded()
        async with self._lock(record.ip_address):
            existing = self._hosts.get(record.ip_address)
            if existing is None:
                self._hosts[record.ip_address] = record.model_copy(deep=True)
                return True
            self._hosts[record.ip_address] = self._merge_found(existing, record)
            return False

    async def remove_host(self, ip: str) -> bool:
        """Forget a host. Returns False if it was not stored."""
        self._ensure_loaded()
        async with self._lock(ip):
            return self._hosts.pop(ip, None) is not None

    async def rename_host(self, ip: str, hostname: str) -> HostRecord | None:
        """Set the display name; an empty name restores the discovered one."""
        self._ensure_loaded()
        async with self._lock(ip):
            host = self._hosts.get(ip)
            if host is None:
                return None
            host.hostname = hostname.strip() or host.original_hostname or ip
            return host

    async def merge_scan(self, result: ScanResult) -> list[str]:
        """Merge a scan result into the store. Returns the IPs of new hosts.

        Known hosts missing from a completed scan are marked offline and
        their failure counter is incremented.
        """
        self._ensure_loaded()
        found = {h.ip_address: h for h in result.hosts}
        new_ips: list[str] = []

        for ip in sorted(set(self._hosts) | set(found), key=address_sort_key):
            async with self._lock(ip):
                existing = self._hosts.get(ip)
                scanned = found.get(ip)

                if scanned is None:
                    if existing is not None and not result.cancelled:
                        existing.mark_offline()
                        existing.failed_attempts += 1
                elif existing is None:
                    self._hosts[ip] = scanned.model_copy(deep=True)
                    new_ips.append(ip)
                else:
                    self._hosts[ip] = self._merge_found(existing, scanned)

        if new_ips:
            logger.info(f"Discovered {len(new_ips)} new hosts: {', '.join(new_ips)}")
        return new_ips

    @staticmethod
    def _merge_found(existing: HostRecord, scanned: HostRecord) -> HostRecord:
        merged = scanned.model_copy(deep=True)
        merged.original_hostname = existing.original_hostname or scanned.original_hostname
        merged.hostname = existing.hostname or scanned.hostname
        merged.subnet = scanned.subnet or existing.subnet
        merged.failed_attempts = 0
        return merged

    async def apply_status_check(self, ip: str, response: HostStatusResponse) -> HostRecord | None:
        """Apply a single-host status check. Returns the updated record, or None if unknown."""
        self._ensure_loaded()
        async with self._lock(ip):
            host = self._hosts.get(ip)
            if host is None:
                return None

            now = datetime.now()
            if response.success:
                host.status = ConnectivityStatus.ONLINE
                if response.device_status is not None:
                    host.device_status = response.device_status
                host.moonraker_version = response.moonraker_version or host.moonraker_version
                host.klippy_state = response.klippy_state or host.klippy_state
                host.printer_flags = response.printer_flags
                host.last_seen = now
                host.failed_attempts = 0
            elif response.klippy_disconnected:
                # Moonraker answered, so this is not a blip: no debounce
                host.failed_attempts += 1
                host.klippy_state = response.klippy_state
                host.moonraker_version = response.moonraker_version or host.moonraker_version
                host.last_seen = now
                host.mark_offline()
            else:
                host.failed_attempts += 1
                if host.failed_attempts >= self.failure_threshold:
                    if host.is_online:
                        logger.info(
                            f"{host.display_name} ({ip}) offline after "
                            f"{host.failed_attempts} failed checks"
                        )
                    host.mark_offline()
            return host
