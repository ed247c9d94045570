"""Connectivity state used to route submissions and trigger queue drains."""

from typing import Optional

import httpx
import structlog


class ConnectivityMonitor:
    """Tracks whether the device is online.

    ``update`` reports the offline-to-online transition so the caller can
    drain the offline queue exactly when connectivity is restored.
    """

    def __init__(self, initially_online: bool = True) -> None:
        self._online = initially_online
        self._logger = structlog.get_logger().bind(component="ConnectivityMonitor")

    def is_online(self) -> bool:
        return self._online

    def update(self, online: bool) -> bool:
        """Set connectivity. Returns True when this call restored connectivity."""
        restored = online and not self._online
        if online != self._online:
            self._logger.info("connectivity_changed", online=online)
        self._online = online
        return restored

    async def probe(
        self,
        url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> bool:
        """Check reachability of ``url`` and update state from the result.

        Any HTTP response counts as online; only transport failures mean offline.
        """
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                await client.head(url)
            online = True
        except httpx.TransportError as e:
            self._logger.debug("connectivity_probe_failed", url=url, error=str(e))
            online = False
        self.update(online)
        return online
