"""Collaborator interfaces consumed by the load test driver."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class ProvisionedUnit:
    """What a provisioner knows about a unit right after creating it."""
    id: str
    name: str
    address: Optional[str] = None


class Provisioner(ABC):
    """Creates and destroys compute units."""

    @abstractmethod
    async def create(
        self,
        name: str,
        size_class: str,
        region: str,
        *,
        tags: Optional[list[str]] = None,
    ) -> ProvisionedUnit:
        """Request a new unit. The address may not be known yet."""

    @abstractmethod
    async def wait_ready(
        self,
        unit_id: str,
        timeout: float,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """Block until the unit has a reachable address and return it.

        Raises ProvisioningTimeout when ``timeout`` elapses and
        CampaignCancelled when ``cancel_event`` is set while polling.
        """

    @abstractmethod
    async def destroy(self, unit_id: str) -> None:
        """Destroy a unit. A unit that is already gone is not an error."""


class RemoteExecutor(ABC):
    """Runs scripts on remote units."""

    @abstractmethod
    async def run(self, address: str, script: str, timeout: Optional[float] = None) -> str:
        """Run ``script`` on ``address`` and return its combined output.

        Raises ExecutionError when the script cannot be executed.
        """


class TestRunner(ABC):
    """Runs the browser test suite through the grid hub."""
    __test__ = False

    @abstractmethod
    async def run(self, hub_address: str, load: int, test_selection: list[str]) -> str:
        """Run the suite with ``load`` remote participants; return raw output."""
