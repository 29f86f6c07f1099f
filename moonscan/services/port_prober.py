"""TCP reachability checks for the Moonraker service port."""

import asyncio
import logging

from ..models.config import ScannerConfig
from .subnet import is_valid_ip

logger = logging.getLogger(__name__)


class PortProber:
    """Checks whether the Moonraker port of a host accepts connections.

    A short timeout keeps bulk scans fast; hosts that still fail after the
    retries get one more round with a longer timeout before being declared
    unreachable.
    """

    def __init__(self, config: ScannerConfig | None = None):
        self.config = config or ScannerConfig()

    @property
    def port(self) -> int:
        return self.config.port

    async def probe(self, address: str) -> bool:
        """Return True if the service port on ``address`` is open. Never raises."""
        if not is_valid_ip(address):
            logger.debug(f"Skipping malformed address {address!r}")
            return False

        if await self._probe_with_retry(address, self.config.port_timeout_seconds):
            return True

        # Adaptive retry for slow networks
        return await self._probe_with_retry(address, self.config.slow_port_timeout_seconds)

    async def _probe_with_retry(self, address: str, timeout: float) -> bool:
        attempts = self.config.port_retry_count + 1
        for attempt in range(attempts):
            if await self._connect(address, timeout):
                return True
            if attempt < attempts - 1:
                await asyncio.sleep(self.config.retry_delay_seconds)
        return False

    async def _connect(self, address: str, timeout: float) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(address, self.config.port),
                timeout=timeout,
            )
        except TimeoutError:
            logger.debug(f"Port {self.config.port} on {address}: timeout after {timeout}s")
            return False
        except OSError as e:
            logger.debug(f"Port {self.config.port} on {address}: {e}")
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass  # Peer reset while closing; the port was open
        return True
