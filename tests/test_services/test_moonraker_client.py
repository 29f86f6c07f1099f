"""Tests for the Moonraker REST client."""

import httpx
import pytest

from moonscan.errors import ApiFailure
from moonscan.models.config import ScannerConfig
from moonscan.services.moonraker_client import MoonrakerClient, build_moonraker_url

SERVER_INFO = {
    "result": {
        "klippy_connected": True,
        "klippy_state": "ready",
        "components": ["database", "file_manager"],
        "failed_components": [],
        "registered_directories": ["config", "gcodes"],
        "warnings": [],
        "websocket_count": 2,
        "moonraker_version": "v0.8.0-312-g0a3b2c1",
        "api_version": [1, 4, 0],
        "api_version_string": "1.4.0",
    }
}

API_PRINTER = {
    "temperature": {"tool0": {"actual": 210.3, "target": 210.0}},
    "state": {
        "text": "Printing",
        "flags": {
            "operational": True,
            "paused": False,
            "printing": True,
            "cancelling": False,
            "pausing": False,
            "error": False,
            "ready": False,
            "closedOrError": False,
        },
    },
}

PRINTER_INFO = {
    "result": {
        "state": "ready",
        "state_message": "Printer is ready",
        "hostname": "voron24",
        "software_version": "v0.12.0-85",
    }
}


def make_client(handler, retry_count: int = 2) -> MoonrakerClient:
    config = ScannerConfig(api_retry_count=retry_count, retry_delay_seconds=0)
    return MoonrakerClient(config, transport=httpx.MockTransport(handler))


class TestBuildUrl:
    def test_ipv4(self):
        assert build_moonraker_url("192.168.1.5", 7125, "server/info") == (
            "http://192.168.1.5:7125/server/info"
        )

    def test_ipv6_bracketed(self):
        assert build_moonraker_url("fd00::5", 7125, "api/printer") == (
            "http://[fd00::5]:7125/api/printer"
        )


class TestProbes:
    """Tests for successful probes."""

    @pytest.mark.asyncio
    async def test_probe_liveness(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=SERVER_INFO)

        async with make_client(handler) as client:
            info = await client.probe_liveness("192.168.1.5")

        assert info.klippy_state == "ready"
        assert info.moonraker_version == "v0.8.0-312-g0a3b2c1"
        assert str(requests[0].url) == "http://192.168.1.5:7125/server/info"
        assert requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_probe_flags(self):
        async with make_client(lambda request: httpx.Response(200, json=API_PRINTER)) as client:
            flags = await client.probe_flags("192.168.1.5")
        assert flags.printing is True
        assert flags.ready is False

    @pytest.mark.asyncio
    async def test_probe_printer_info(self):
        async with make_client(lambda request: httpx.Response(200, json=PRINTER_INFO)) as client:
            info = await client.probe_printer_info("192.168.1.5")
        assert info.hostname == "voron24"


class TestRetries:
    """Tests for retry behaviour."""

    @pytest.mark.asyncio
    async def test_retry_after_server_error(self):
        """Test a transient 503 is retried and the next answer used."""
        responses = iter([httpx.Response(503), httpx.Response(200, json=SERVER_INFO)])
        calls = []

        def handler(request):
            calls.append(request)
            return next(responses)

        async with make_client(handler) as client:
            info = await client.probe_liveness("192.168.1.5")
        assert info.klippy_connected is True
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_non_2xx_exhausts_retries(self):
        """Test persistent HTTP errors surface as ApiFailure after all attempts."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, text="Not Found")

        async with make_client(handler, retry_count=2) as client:
            with pytest.raises(ApiFailure) as exc_info:
                await client.probe_liveness("192.168.1.5")
        assert len(calls) == 3
        assert exc_info.value.reason == "HTTP 404"
        assert exc_info.value.endpoint == "server/info"

    @pytest.mark.asyncio
    async def test_transport_error_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("Connection refused", request=request)

        async with make_client(handler, retry_count=1) as client:
            with pytest.raises(ApiFailure) as exc_info:
                await client.probe_flags("192.168.1.5")
        assert len(calls) == 2
        assert "Connection error" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_timeout_retried(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler, retry_count=0) as client:
            with pytest.raises(ApiFailure) as exc_info:
                await client.probe_liveness("192.168.1.5")
        assert exc_info.value.reason == "Request timeout"


class TestParseFailures:
    """Tests for unparseable payloads."""

    @pytest.mark.asyncio
    async def test_invalid_json_not_retried(self):
        """Test a garbage body is a parse failure, not a crash or a default."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, text="<html>nginx</html>")

        async with make_client(handler) as client:
            with pytest.raises(ApiFailure) as exc_info:
                await client.probe_liveness("192.168.1.5")
        assert len(calls) == 1
        assert "Invalid JSON" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_missing_result_key(self):
        async with make_client(lambda request: httpx.Response(200, json={"error": "x"})) as client:
            with pytest.raises(ApiFailure):
                await client.probe_liveness("192.168.1.5")

    @pytest.mark.asyncio
    async def test_missing_flags(self):
        """Test /api/printer without state.flags fails instead of faking standby."""
        body = {"state": {"text": "Operational"}}
        async with make_client(lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(ApiFailure) as exc_info:
                await client.probe_flags("192.168.1.5")
        assert exc_info.value.endpoint == "api/printer"

    @pytest.mark.asyncio
    async def test_invalid_flag_types(self):
        body = {"state": {"flags": {"printing": "maybe"}}}
        async with make_client(lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(ApiFailure) as exc_info:
                await client.probe_flags("192.168.1.5")
        assert "Parse error" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_json_array_body(self):
        async with make_client(lambda request: httpx.Response(200, json=[1, 2])) as client:
            with pytest.raises(ApiFailure):
                await client.probe_printer_info("192.168.1.5")
