"""Configuration models using Pydantic for validation."""

import ipaddress
import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

MOONRAKER_PORT = 7125


class SubnetConfig(BaseModel):
    """A subnet to scan for printers."""

    name: str = ""
    range: str  # CIDR notation, e.g., "192.168.1.0/24"
    enabled: bool = True

    @field_validator("range")
    @classmethod
    def validate_cidr(cls, v: str) -> str:
        """Validate that range is a valid CIDR notation."""
        v = v.strip()
        try:
            ipaddress.ip_network(v, strict=False)
        except ValueError as e:
            raise ValueError(f"Invalid CIDR range '{v}': {e}")
        return v

    @property
    def label(self) -> str:
        return self.name or self.range


class ScannerConfig(BaseModel):
    """Timeouts, retries and concurrency ceilings for probing."""

    port: int = Field(default=MOONRAKER_PORT, ge=1, le=65535)
    port_timeout_seconds: float = 0.5
    slow_port_timeout_seconds: float = 1.5  # Second pass for slow or congested links
    port_retry_count: int = Field(default=2, ge=0, le=10)
    port_concurrency: int = 200
    api_timeout_seconds: float = 5.0
    api_retry_count: int = Field(default=2, ge=0, le=10)
    api_concurrency: int = 50
    retry_delay_seconds: float = Field(default=0.1, ge=0)
    batch_pause_seconds: float = Field(default=0.02, ge=0)

    @field_validator(
        "port_timeout_seconds",
        "slow_port_timeout_seconds",
        "api_timeout_seconds",
    )
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate that timeouts are positive."""
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v

    @field_validator("port_concurrency", "api_concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Validate that concurrency ceilings allow at least one probe."""
        if v < 1:
            raise ValueError(f"Concurrency must be at least 1, got {v}")
        return v


class MonitorConfig(BaseModel):
    """Background status polling configuration."""

    enabled: bool = True
    interval_seconds: float = 30.0
    failure_threshold: int = Field(default=3, ge=1)

    @field_validator("interval_seconds")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Polling interval must be positive, got {v}")
        return v


class NotificationSettings(BaseModel):
    """Which device status transitions are reported to notification consumers."""

    printing: bool = True
    paused: bool = True
    error: bool = True
    cancelling: bool = True
    standby: bool = False
    offline: bool = False

    def is_enabled(self, status: str) -> bool:
        """Return whether a transition into ``status`` should be reported."""
        return bool(getattr(self, str(status), False))


class Settings(BaseModel):
    """General application settings."""

    hosts_path: str = "hosts.json"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class Config(BaseModel):
    """Main configuration model."""

    subnets: list[SubnetConfig] = Field(default_factory=list)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    settings: Settings = Field(default_factory=Settings)

    @property
    def enabled_subnets(self) -> list[SubnetConfig]:
        return [s for s in self.subnets if s.enabled]

    @classmethod
    def load(cls, path: Path | str = "config.json") -> "Config":
        """Load configuration from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = json.load(f)

        return cls.model_validate(data)

    @classmethod
    def load_or_default(cls, path: Path | str = "config.json") -> "Config":
        """Load configuration or return default if file doesn't exist."""
        try:
            return cls.load(path)
        except FileNotFoundError:
            return cls()
