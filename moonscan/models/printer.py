"""Moonraker API payload models."""

from pydantic import BaseModel, ConfigDict, Field

KLIPPY_DISCONNECTED = "disconnected"


class PrinterFlags(BaseModel):
    """Printer state flags reported under ``state.flags`` by ``/api/printer``.

    The controller may report contradictory combinations (for example both
    ``printing`` and ``paused``); the status resolver decides which one wins.
    """

    model_config = ConfigDict(populate_by_name=True)

    operational: bool
    paused: bool
    printing: bool
    cancelling: bool
    pausing: bool
    resuming: bool = False
    sd_ready: bool = Field(default=False, alias="sdReady")
    error: bool
    ready: bool
    closed_or_error: bool = Field(alias="closedOrError")


class ServerInfo(BaseModel):
    """Liveness information returned by ``/server/info``."""

    klippy_connected: bool
    klippy_state: str
    moonraker_version: str
    components: list[str] = Field(default_factory=list)
    failed_components: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    websocket_count: int = 0
    api_version: list[int] = Field(default_factory=list)
    api_version_string: str | None = None

    @property
    def is_klippy_disconnected(self) -> bool:
        """Whether Moonraker is up but not attached to a running Klippy."""
        return self.klippy_state == KLIPPY_DISCONNECTED


class PrinterInfo(BaseModel):
    """Printer information returned by ``/printer/info``."""

    state: str = ""
    state_message: str = ""
    hostname: str | None = None
    software_version: str | None = None
