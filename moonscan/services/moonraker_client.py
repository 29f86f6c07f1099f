"""Moonraker REST client used for liveness and printer state probes."""

import asyncio
import ipaddress
import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from ..errors import ApiFailure
from ..models.config import ScannerConfig
from ..models.printer import PrinterFlags, PrinterInfo, ServerInfo

logger = logging.getLogger(__name__)

SERVER_INFO_ENDPOINT = "server/info"
PRINTER_FLAGS_ENDPOINT = "api/printer"
PRINTER_INFO_ENDPOINT = "printer/info"


def build_moonraker_url(host: str, port: int, endpoint: str) -> str:
    """Build the URL of a Moonraker endpoint, bracketing IPv6 literals."""
    try:
        if ipaddress.ip_address(host).version == 6:
            host = f"[{host}]"
    except ValueError:
        pass  # Hostname, use as-is
    return f"http://{host}:{port}/{endpoint}"


class MoonrakerClient:
    """Issues GET requests against Moonraker with retry.

    One ``httpx.AsyncClient`` is shared by every probe so connections are
    pooled across a scan. Use as an async context manager.
    """

    def __init__(
        self,
        config: ScannerConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or ScannerConfig()
        limits = httpx.Limits(
            max_connections=self.config.api_concurrency,
            max_keepalive_connections=self.config.api_concurrency,
        )
        self._client = httpx.AsyncClient(
            timeout=self.config.api_timeout_seconds,
            limits=limits,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "MoonrakerClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def probe_liveness(self, address: str) -> ServerInfo:
        """Fetch ``/server/info``."""
        data = await self._get_json(address, SERVER_INFO_ENDPOINT)
        return self._parse(address, SERVER_INFO_ENDPOINT, ServerInfo, data.get("result"))

    async def probe_flags(self, address: str) -> PrinterFlags:
        """Fetch the ten printer state flags from ``/api/printer``."""
        data = await self._get_json(address, PRINTER_FLAGS_ENDPOINT)
        state = data.get("state")
        flags = state.get("flags") if isinstance(state, dict) else None
        return self._parse(address, PRINTER_FLAGS_ENDPOINT, PrinterFlags, flags)

    async def probe_printer_info(self, address: str) -> PrinterInfo:
        """Fetch ``/printer/info`` (hostname and Klipper state)."""
        data = await self._get_json(address, PRINTER_INFO_ENDPOINT)
        return self._parse(address, PRINTER_INFO_ENDPOINT, PrinterInfo, data.get("result"))

    async def _get_json(self, address: str, endpoint: str) -> dict[str, Any]:
        """GET an endpoint, retrying transport errors and non-2xx responses."""
        url = build_moonraker_url(address, self.config.port, endpoint)
        max_retries = self.config.api_retry_count
        last_error = "Unknown error"

        for attempt in range(max_retries + 1):
            try:
                response = await self._client.get(url)
                response.raise_for_status()
            except httpx.TimeoutException:
                last_error = "Request timeout"
            except httpx.HTTPStatusError as e:
                last_error = f"HTTP {e.response.status_code}"
            except httpx.HTTPError as e:
                last_error = f"Connection error: {e}"
            else:
                return self._decode(address, endpoint, response)

            if attempt < max_retries:
                logger.debug(f"{url}: {last_error}, retry {attempt + 1}/{max_retries}")
                await asyncio.sleep(self.config.retry_delay_seconds)

        raise ApiFailure(address, endpoint, last_error)

    @staticmethod
    def _decode(address: str, endpoint: str, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ApiFailure(address, endpoint, f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ApiFailure(address, endpoint, f"Expected a JSON object, got {type(data).__name__}")
        return data

    @staticmethod
    def _parse(address: str, endpoint: str, model: type[BaseModel], payload: Any) -> Any:
        if not isinstance(payload, dict):
            raise ApiFailure(address, endpoint, "Missing payload object")
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise ApiFailure(address, endpoint, f"Parse error: {e.error_count()} invalid fields") from e
