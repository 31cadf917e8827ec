"""Grid hub status polling."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import httpx

from common.models.worker import GridStatus

logger = logging.getLogger(__name__)


class GridMonitor:
    """Read the hub's /status endpoint."""

    def __init__(
        self,
        port: int = 4444,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.port = port
        self.timeout = timeout
        self._transport = transport

    async def get_status(self, hub_address: str) -> Optional[GridStatus]:
        """Current grid status, or None when the hub cannot be reached."""
        url = f"http://{hub_address}:{self.port}/status"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                value = response.json().get("value", {})
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Grid status unavailable at {url}: {e}")
            return None

        return GridStatus(
            ready=bool(value.get("ready", False)),
            message=value.get("message", ""),
            node_count=len(value.get("nodes") or []),
        )

    async def wait_for_nodes(
        self,
        hub_address: str,
        expected: int,
        timeout: float,
        interval: float = 5.0,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[GridStatus]:
        """Poll until ``expected`` nodes joined or ``timeout`` elapses.

        Returns the last status seen. Never raises on an unreachable hub.
        """
        deadline = time.monotonic() + timeout
        status = None

        while True:
            status = await self.get_status(hub_address)
            if status is not None and status.node_count >= expected:
                return status
            remaining = deadline - time.monotonic()
            if remaining <= 0 or (cancel_event is not None and cancel_event.is_set()):
                return status
            await asyncio.sleep(min(interval, remaining))
