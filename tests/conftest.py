"""Pytest configuration and fixtures."""

import asyncio
import json
import tempfile
from pathlib import Path

import pytest

from moonscan.errors import ApiFailure
from moonscan.models.config import ScannerConfig
from moonscan.models.printer import PrinterFlags, PrinterInfo, ServerInfo


class FakePortProber:
    """Port prober answering from a fixed set of open addresses.

    Records every call and the highest number of probes in flight at once.
    """

    def __init__(self, open_addresses, delay: float = 0.0):
        self.open_addresses = set(open_addresses)
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, address: str) -> bool:
        self.calls.append(address)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return address in self.open_addresses


class FakeMoonrakerClient:
    """API client serving canned liveness, flags and hostname answers."""

    def __init__(self, servers=None, flags=None, hostnames=None):
        self.servers: dict[str, ServerInfo] = dict(servers or {})
        self.flags: dict[str, PrinterFlags] = dict(flags or {})
        self.hostnames: dict[str, str] = dict(hostnames or {})
        self.calls: list[tuple[str, str]] = []

    async def probe_liveness(self, address: str) -> ServerInfo:
        self.calls.append((address, "server/info"))
        if address not in self.servers:
            raise ApiFailure(address, "server/info", "Connection error")
        return self.servers[address]

    async def probe_flags(self, address: str) -> PrinterFlags:
        self.calls.append((address, "api/printer"))
        if address not in self.flags:
            raise ApiFailure(address, "api/printer", "Parse error")
        return self.flags[address]

    async def probe_printer_info(self, address: str) -> PrinterInfo:
        self.calls.append((address, "printer/info"))
        if address not in self.hostnames:
            raise ApiFailure(address, "printer/info", "HTTP 404")
        return PrinterInfo(state="ready", hostname=self.hostnames[address])

    def addresses_called(self) -> set[str]:
        return {address for address, _ in self.calls}


def make_flags(**overrides) -> PrinterFlags:
    """Flags of an idle, ready printer with selected flags overridden."""
    values = {
        "operational": True,
        "paused": False,
        "printing": False,
        "cancelling": False,
        "pausing": False,
        "resuming": False,
        "sd_ready": False,
        "error": False,
        "ready": True,
        "closed_or_error": False,
    }
    values.update(overrides)
    return PrinterFlags(**values)


def make_server_info(klippy_state: str = "ready", version: str = "v0.8.0-300") -> ServerInfo:
    return ServerInfo(
        klippy_connected=klippy_state != "disconnected",
        klippy_state=klippy_state,
        moonraker_version=version,
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fast_config():
    """Scanner config without waits between retries and batches."""
    return ScannerConfig(retry_delay_seconds=0, batch_pause_seconds=0)


@pytest.fixture
def flags_factory():
    return make_flags


@pytest.fixture
def server_info_factory():
    return make_server_info


@pytest.fixture
def port_prober_factory():
    return FakePortProber


@pytest.fixture
def api_client_factory():
    return FakeMoonrakerClient


@pytest.fixture
def sample_config_data():
    """Sample configuration data for testing."""
    return {
        "subnets": [
            {"name": "Workshop", "range": "192.168.1.0/24", "enabled": True},
            {"name": "Farm", "range": "10.0.20.0/28", "enabled": False},
        ],
        "scanner": {
            "port_timeout_seconds": 0.3,
            "api_concurrency": 20,
        },
        "monitor": {
            "interval_seconds": 10,
            "failure_threshold": 3,
        },
        "notifications": {
            "standby": True,
        },
        "settings": {
            "hosts_path": "printers.json",
            "log_level": "DEBUG",
        },
    }


@pytest.fixture
def sample_config_file(temp_dir, sample_config_data):
    """Create a sample config file for testing."""
    config_path = temp_dir / "config.json"
    with open(config_path, "w") as f:
        json.dump(sample_config_data, f)
    return config_path
