"""ConnectivityMonitor tests."""

import asyncio

import httpx
import pytest

from fieldsync.events import ConnectivityChanged
from fieldsync.services.connectivity import ConnectivityMonitor


@pytest.mark.asyncio
async def test_defaults_to_connected():
    assert ConnectivityMonitor().is_connected
    assert not ConnectivityMonitor(initially_connected=False).is_connected


@pytest.mark.asyncio
async def test_events_fire_on_transitions_only():
    monitor = ConnectivityMonitor()
    events: list[ConnectivityChanged] = []
    monitor.add_listener(events.append)

    assert await monitor.set_connected(True) is False
    assert await monitor.set_connected(False) is True
    assert await monitor.set_connected(False) is False
    assert await monitor.set_connected(True) is True

    assert [e.connected for e in events] == [False, True]


@pytest.mark.asyncio
async def test_wait_until_connected():
    monitor = ConnectivityMonitor(initially_connected=False)

    assert await monitor.wait_until_connected(timeout=0) is False
    assert await monitor.wait_until_connected(timeout=0.05) is False

    waiter = asyncio.create_task(monitor.wait_until_connected(timeout=5))
    await asyncio.sleep(0)
    await monitor.set_connected(True)

    assert await waiter is True


@pytest.mark.asyncio
async def test_probe_any_response_means_connected():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "HEAD"
        return httpx.Response(503)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        monitor = ConnectivityMonitor(
            probe_url="http://backend.test/", initially_connected=False, http_client=client
        )

        assert await monitor.probe() is True
        assert monitor.is_connected


@pytest.mark.asyncio
async def test_probe_transport_error_means_disconnected():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        monitor = ConnectivityMonitor(probe_url="http://backend.test/", http_client=client)
        events: list[ConnectivityChanged] = []
        monitor.add_listener(events.append)

        assert await monitor.probe() is False
        assert not monitor.is_connected
        assert events == [ConnectivityChanged(connected=False)]


@pytest.mark.asyncio
async def test_probe_without_url_keeps_state():
    monitor = ConnectivityMonitor(probe_url=None, initially_connected=False)

    assert await monitor.probe() is False
    assert not monitor.is_connected
