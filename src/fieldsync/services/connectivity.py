"""Connectivity monitor gating immediate uploads.

is_connected is read synchronously at decision points. The flag is updated
either by platform glue calling set_connected(), or by the optional probe loop
(run) which stands in for OS reachability callbacks.
"""

import asyncio

import httpx
import structlog

from fieldsync.events import ConnectivityChanged, EventEmitter, Listener

logger = structlog.get_logger(__name__)


class ConnectivityMonitor:
    """Current online/offline state with transition notifications."""

    def __init__(
        self,
        probe_url: str | None = None,
        probe_interval: float = 10.0,
        probe_timeout: float = 5.0,
        initially_connected: bool = True,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize monitor.

        Args:
            probe_url: URL checked by run(); None disables probing
            probe_interval: Seconds between probes
            probe_timeout: Timeout for a single probe request
            initially_connected: State reported before the first update
            http_client: Optional client for probes (tests inject a mock transport)
        """
        self.probe_url = probe_url
        self.probe_interval = probe_interval
        self.probe_timeout = probe_timeout
        self._http_client = http_client
        self._connected = asyncio.Event()
        if initially_connected:
            self._connected.set()
        self._events: EventEmitter[ConnectivityChanged] = EventEmitter("connectivity_changed")

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def add_listener(self, listener: Listener) -> None:
        """Register a ConnectivityChanged observer (called on transitions only)."""
        self._events.add_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._events.remove_listener(listener)

    async def set_connected(self, connected: bool) -> bool:
        """Record the current reachability.

        Returns:
            True if the state changed
        """
        if connected == self.is_connected:
            return False

        if connected:
            self._connected.set()
        else:
            self._connected.clear()

        logger.info("connectivity.changed", connected=connected)
        await self._events.emit(ConnectivityChanged(connected=connected))
        return True

    async def wait_until_connected(self, timeout: float | None = None) -> bool:
        """Wait for connectivity.

        Args:
            timeout: Maximum seconds to wait (None waits forever, 0 does not wait)

        Returns:
            True if connected when returning
        """
        if self.is_connected:
            return True
        if timeout is not None and timeout <= 0:
            return False
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def probe(self) -> bool:
        """Check reachability of probe_url once and update the state.

        Any HTTP response (even 4xx/5xx) means the network path works.
        """
        if not self.probe_url:
            return self.is_connected

        try:
            if self._http_client is not None:
                await self._http_client.head(self.probe_url, timeout=self.probe_timeout)
            else:
                async with httpx.AsyncClient(timeout=self.probe_timeout) as client:
                    await client.head(self.probe_url)
            reachable = True
        except httpx.TransportError as e:
            logger.debug("connectivity.probe_failed", url=self.probe_url, error=str(e))
            reachable = False

        await self.set_connected(reachable)
        return reachable

    async def run(self) -> None:
        """Probe loop. Runs until cancelled."""
        logger.info(
            "connectivity.monitor_started",
            probe_url=self.probe_url,
            interval=self.probe_interval,
        )
        try:
            while True:
                await self.probe()
                await asyncio.sleep(self.probe_interval)
        except asyncio.CancelledError:
            logger.info("connectivity.monitor_stopped")
            raise
