"""Tests for ConnectivityMonitor."""

import httpx
import pytest

from proof_pipeline.pipeline.connectivity import ConnectivityMonitor


class TestConnectivityMonitor:
    def test_update_reports_restoration_only(self) -> None:
        monitor = ConnectivityMonitor(initially_online=False)
        assert monitor.update(False) is False
        assert monitor.update(True) is True
        assert monitor.update(True) is False
        assert monitor.is_online()

    @pytest.mark.asyncio
    async def test_probe_any_response_is_online(self) -> None:
        monitor = ConnectivityMonitor(initially_online=False)
        transport = httpx.MockTransport(lambda r: httpx.Response(503))
        assert await monitor.probe("https://example.test", transport=transport) is True
        assert monitor.is_online()

    @pytest.mark.asyncio
    async def test_probe_transport_error_is_offline(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        monitor = ConnectivityMonitor()
        assert await monitor.probe("https://example.test", transport=httpx.MockTransport(refuse)) is False
        assert not monitor.is_online()
