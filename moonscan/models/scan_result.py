"""Host record and network scan result models."""

import ipaddress
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from .printer import PrinterFlags


class ConnectivityStatus(str, Enum):
    """Whether the Moonraker service of a host answers."""

    ONLINE = "online"
    OFFLINE = "offline"


class DeviceStatus(str, Enum):
    """Operational state of the printer behind a host."""

    PRINTING = "printing"
    PAUSED = "paused"
    ERROR = "error"
    CANCELLING = "cancelling"
    STANDBY = "standby"
    OFFLINE = "offline"


def address_sort_key(ip: str) -> tuple[int, int]:
    """Sort key ordering addresses numerically, IPv4 before IPv6."""
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return (99, 0)
    return (address.version, int(address))


class HostRecord(BaseModel):
    """Last known state of a printer host, keyed by IP address."""

    ip_address: str
    hostname: str = ""
    original_hostname: str = ""
    subnet: str = ""
    status: ConnectivityStatus = ConnectivityStatus.ONLINE
    device_status: DeviceStatus = DeviceStatus.STANDBY
    moonraker_version: str | None = None
    klippy_state: str | None = None
    printer_flags: PrinterFlags | None = None
    last_seen: datetime | None = None
    failed_attempts: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _offline_host_has_offline_device(self) -> "HostRecord":
        if self.status == ConnectivityStatus.OFFLINE:
            self.device_status = DeviceStatus.OFFLINE
        return self

    @property
    def display_name(self) -> str:
        """Return best available name for display."""
        return self.hostname or self.original_hostname or self.ip_address

    @property
    def has_custom_name(self) -> bool:
        """Whether the user renamed this host."""
        return bool(self.original_hostname) and self.hostname != self.original_hostname

    @property
    def is_online(self) -> bool:
        return self.status == ConnectivityStatus.ONLINE

    def mark_offline(self) -> None:
        """Flip to offline, keeping the last flags for reference."""
        self.status = ConnectivityStatus.OFFLINE
        self.device_status = DeviceStatus.OFFLINE


class HostStatusResponse(BaseModel):
    """Outcome of an on-demand status check of a single host."""

    success: bool
    status: ConnectivityStatus
    device_status: DeviceStatus | None = None
    moonraker_version: str | None = None
    klippy_state: str | None = None
    printer_flags: PrinterFlags | None = None

    @property
    def klippy_disconnected(self) -> bool:
        return self.klippy_state == "disconnected"


class ScanPhase(str, Enum):
    """Stage a scan is in."""

    PREPARING = "preparing"
    PORT_SCANNING = "port_scanning"
    API_CHECKING = "api_checking"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


class ScanProgress(BaseModel):
    """Progress snapshot reported while a scan runs.

    Port scanning covers 0-40%, API checking 40-90%, completion jumps to 100%.
    """

    phase: ScanPhase = ScanPhase.PREPARING
    percentage: int = Field(default=0, ge=0, le=100)
    total_ips: int = 0
    scanned_ips: int = 0
    found_hosts: int = 0
    message: str = "Preparing scan..."

    def update_port_scanning(self, scanned: int) -> None:
        self.phase = ScanPhase.PORT_SCANNING
        self.scanned_ips = scanned
        self.percentage = int(scanned / self.total_ips * 40) if self.total_ips else 0
        self.message = f"Scanning ports: {scanned}/{self.total_ips} IPs"

    def update_api_checking(self, checked: int, candidates: int, found: int) -> None:
        self.phase = ScanPhase.API_CHECKING
        self.found_hosts = found
        self.percentage = 40 + (int(checked / candidates * 50) if candidates else 50)
        self.message = f"Checking APIs: {checked}/{candidates} hosts, found {found}"

    def complete(self, found: int) -> None:
        self.phase = ScanPhase.COMPLETED
        self.percentage = 100
        self.found_hosts = found
        self.message = f"Scan completed! Found {found} hosts"

    def cancel(self) -> None:
        self.phase = ScanPhase.CANCELLED
        self.message = f"Scan cancelled at {self.percentage}%"

    def error(self, error_message: str) -> None:
        self.phase = ScanPhase.ERROR
        self.message = f"Scan error: {error_message}"


class ScanResult(BaseModel):
    """Result of a network scan across one or more subnets."""

    hosts: list[HostRecord] = Field(default_factory=list)
    total_hosts: int = 0
    online_hosts: int = 0
    scan_progress: int = Field(default=0, ge=0, le=100)
    scan_time: datetime = Field(default_factory=datetime.now)
    duration_seconds: float = 0.0
    cancelled: bool = False

    @property
    def completed(self) -> bool:
        return self.scan_progress == 100

    @property
    def offline_hosts(self) -> list[HostRecord]:
        """Hosts that answered but are not usable (Klippy disconnected)."""
        return [h for h in self.hosts if h.status == ConnectivityStatus.OFFLINE]

    def by_status(self, status: DeviceStatus) -> list[HostRecord]:
        """Hosts whose printer currently reports the given status."""
        return [h for h in self.hosts if h.device_status == status]
