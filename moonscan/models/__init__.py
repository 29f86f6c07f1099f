"""Data models for the scanner."""

from .config import (
    Config,
    MonitorConfig,
    NotificationSettings,
    ScannerConfig,
    Settings,
    SubnetConfig,
)
from .printer import PrinterFlags, PrinterInfo, ServerInfo
from .scan_result import (
    ConnectivityStatus,
    DeviceStatus,
    HostRecord,
    HostStatusResponse,
    ScanPhase,
    ScanProgress,
    ScanResult,
)

__all__ = [
    "Config",
    "ConnectivityStatus",
    "DeviceStatus",
    "HostRecord",
    "HostStatusResponse",
    "MonitorConfig",
    "NotificationSettings",
    "PrinterFlags",
    "PrinterInfo",
    "ScanPhase",
    "ScanProgress",
    "ScanResult",
    "ScannerConfig",
    "ServerInfo",
    "Settings",
    "SubnetConfig",
]
