"""Services for discovering and checking Moonraker hosts."""

from .host_store import HostStore
from .monitor import HostMonitor, StatusChange
from .moonraker_client import MoonrakerClient
from .network_scanner import NetworkScanner
from .port_prober import PortProber
from .status_resolver import resolve_device_status
from .subnet import expand_subnet, expand_subnets

__all__ = [
    "HostMonitor",
    "HostStore",
    "MoonrakerClient",
    "NetworkScanner",
    "PortProber",
    "StatusChange",
    "expand_subnet",
    "expand_subnets",
    "resolve_device_status",
]
